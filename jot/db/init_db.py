"""
数据库初始化
"""

import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

from jot.db.base import Base
from jot.db.session import engine as default_engine
from jot.core.logging import db_logger


async def create_tables(engine: AsyncEngine):
    """创建所有表"""
    # 导入所有模型以确保它们被注册
    import jot.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database(engine: AsyncEngine = None):
    """初始化数据库"""
    db_logger.info("Initializing database...")
    await create_tables(engine or default_engine)
    db_logger.info("Database tables created")


if __name__ == "__main__":
    asyncio.run(init_database())
