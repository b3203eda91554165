"""
旧版单次采集数据模型
"""

from sqlalchemy import Column, String, Integer

from jot.db.base import BaseModel


class Capture(BaseModel):
    """单次采集：一个音频或文本输入直接生成一篇新笔记"""
    __tablename__ = "captures"

    user_id = Column(String(64), nullable=False, index=True, comment="所有者ID")
    audio_path = Column(String(500), comment="audio存储桶中的键")
    text_path = Column(String(500), comment="notes存储桶中的键")
    duration_s = Column(Integer, comment="声明的音频时长(秒)")
    mime_type = Column(String(100), comment="声明的媒体类型")
