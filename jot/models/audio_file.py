"""
音频文件数据模型
"""

from sqlalchemy import Column, String, Integer, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from jot.db.base import BaseModel


class AudioFile(BaseModel):
    """音频输入模型，上传提交后不可变（转录结果除外）"""
    __tablename__ = "audio_files"

    note_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True, comment="笔记ID")
    storage_path = Column(String(500), nullable=False, comment="audio存储桶中的键")
    duration_s = Column(Integer, comment="声明的音频时长(秒)")
    mime_type = Column(String(100), comment="声明的媒体类型")
    order_index = Column(Integer, nullable=False, default=0, comment="在笔记中的顺序")

    # 关系
    note = relationship("Note", back_populates="audio_files")
    transcript = relationship(
        "Transcript",
        back_populates="audio_file",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("duration_s IS NULL OR duration_s >= 0", name="duration_non_negative"),
    )
