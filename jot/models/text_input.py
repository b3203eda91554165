"""
文本输入数据模型
"""

from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from jot.db.base import BaseModel


class TextInput(BaseModel):
    """文本/Markdown输入模型，提交后不可变"""
    __tablename__ = "text_inputs"

    note_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True, comment="笔记ID")
    storage_path = Column(String(500), nullable=False, comment="notes存储桶中的键")
    mime_type = Column(String(100), comment="媒体类型: text/plain, text/markdown")

    # 关系
    note = relationship("Note", back_populates="text_inputs")
