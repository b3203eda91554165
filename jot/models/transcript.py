"""
转录数据模型
"""

from sqlalchemy import Column, String, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from jot.db.base import BaseModel


class Transcript(BaseModel):
    """转录结果，每个音频输入（或旧版采集）最多一条，创建后不再更新"""
    __tablename__ = "transcripts"

    audio_file_id = Column(String(36), ForeignKey("audio_files.id", ondelete="CASCADE"), unique=True, comment="音频文件ID")
    capture_id = Column(String(36), ForeignKey("captures.id", ondelete="CASCADE"), unique=True, comment="旧版采集ID")
    text = Column(Text, nullable=False, comment="完整转录文本")
    segments_json = Column(JSON, nullable=False, default=list, comment="分段 [{start, end, text}]")

    # 关系
    audio_file = relationship("AudioFile", back_populates="transcript")
