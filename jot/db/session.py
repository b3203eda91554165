"""
数据库会话管理
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine

from jot.config import settings


def create_database_engine(database_url: str = None) -> AsyncEngine:
    """创建数据库引擎"""
    database_url = database_url or settings.database_url
    engine_kwargs = {
        "echo": settings.database_echo,
    }

    # 根据数据库类型配置连接池
    if database_url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,  # 1小时回收连接
        })
    elif database_url.startswith("sqlite"):
        engine_kwargs.update({
            "connect_args": {"check_same_thread": False}
        })

    engine = create_async_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        # SQLite默认不启用外键，级联删除依赖它
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """创建会话工厂"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )


# 创建数据库引擎和会话工厂
engine = create_database_engine()
AsyncSessionLocal = create_session_factory(engine)


def get_session_factory() -> async_sessionmaker:
    """获取会话工厂的依赖项"""
    return AsyncSessionLocal
