"""
数据库基础配置
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime, MetaData

# 数据库元数据配置
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s"
    }
)

# 创建基础模型类
Base = declarative_base(metadata=metadata)


def utcnow() -> datetime:
    """当前UTC时间（微秒精度，SQLite的CURRENT_TIMESTAMP只到秒）"""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """生成UUID v4主键"""
    return str(uuid.uuid4())


class BaseModel(Base):
    """数据库模型基类"""
    __abstract__ = True

    id = Column(String(36), primary_key=True, default=generate_id, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
