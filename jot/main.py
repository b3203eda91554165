"""
FastAPI应用入口点
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from jot.config import settings
from jot.services.ai import initialize_ai_services, shutdown_ai_services
from jot.core.cache import redis_manager
from jot.core import (
    JotException,
    setup_logging,
    RequestLoggingMiddleware,
    ExceptionHandlingMiddleware,
    api_logger
)
from jot.core.middleware import jot_exception_response
from jot.db.init_db import init_database


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    api_logger.info("Starting Jot API...")

    try:
        # 初始化数据库
        await init_database()
        api_logger.info("Database initialized successfully")

        # 初始化限流计数器存储，不可用时限流放行
        await redis_manager.initialize(settings.redis_url)

        # 初始化AI服务
        initialize_ai_services(settings.ai_config)
        api_logger.info("AI service initialized successfully")

    except Exception as e:
        api_logger.error(f"Failed to initialize application: {e}")
        raise

    api_logger.info("Jot API started successfully")

    yield

    api_logger.info("Shutting down Jot API...")

    try:
        await shutdown_ai_services()
    except Exception as e:
        api_logger.error(f"Error shutting down AI service: {e}")

    try:
        await redis_manager.shutdown()
        api_logger.info("Redis connection closed")
    except Exception as e:
        api_logger.error(f"Error shutting down Redis: {e}")

    api_logger.info("Jot API shutdown completed")


# 设置日志
setup_logging()

# 创建FastAPI应用实例
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Jot note ingestion and structuring API",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# 添加中间件（后添加的在外层）
app.add_middleware(ExceptionHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# 配置CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(JotException)
async def handle_jot_exception(request: Request, exc: JotException):
    """路由中抛出的业务异常统一渲染"""
    return jot_exception_response(request, exc)


@app.get("/health")
async def health_check():
    """简单健康检查"""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "rate_limit_store": redis_manager.is_healthy
    }


# 导入路由
from jot.api.v1.api import api_router
app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )
