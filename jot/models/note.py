"""
笔记数据模型
"""

from sqlalchemy import Column, String, Text, Integer, ForeignKey, DateTime, JSON, Index
from sqlalchemy.orm import relationship

from jot.db.base import BaseModel, utcnow
from jot.utils.editor_doc import empty_document


class Note(BaseModel):
    """笔记模型：可编辑的主实体，聚合多个音频和文本输入"""
    __tablename__ = "notes"

    user_id = Column(String(64), nullable=False, comment="所有者ID")
    title = Column(String(255), nullable=False, default="", comment="标题，空串表示未设置")
    content_text = Column(Text, comment="合并后的文本内容")
    editor_json = Column(JSON, nullable=False, default=empty_document, comment="富文本文档")
    outline_json = Column(JSON, comment="结构化大纲")
    tags = Column(JSON, nullable=False, default=list, comment="标签列表")
    capture_id = Column(String(36), ForeignKey("captures.id", ondelete="SET NULL"), comment="旧版单次采集ID")
    version = Column(Integer, nullable=False, default=1, comment="写入版本号")
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # 关系
    audio_files = relationship(
        "AudioFile",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AudioFile.order_index"
    )
    text_inputs = relationship(
        "TextInput",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TextInput.created_at"
    )

    __table_args__ = (
        Index('ix_notes_user_created', 'user_id', 'created_at'),
    )
