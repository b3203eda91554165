"""
日志配置

所有模块通过 get_logger 取得绑定了名称的 loguru 日志器。
流水线日志额外绑定 run_id，同一次处理的日志可以按 run_id 串起来。
"""

import sys
import logging
from pathlib import Path
from typing import Any, Dict, List
from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<magenta>{extra[run_id]}</magenta> | "
    "<level>{message}</level>"
)

# 未绑定时的默认值，格式串引用的字段必须存在
DEFAULT_EXTRA = {"name": "jot", "run_id": "-"}

# 处理流程相关的日志器
PIPELINE_LOGGERS = ("pipeline", "ai_service", "audio_processing")


class InterceptHandler(logging.Handler):
    """拦截标准库日志（uvicorn、sqlalchemy、httpx）并转发给loguru"""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 跳过 logging 模块自身的栈帧
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _file_sinks(log_dir: Path) -> List[Dict[str, Any]]:
    """文件日志：全部、错误、处理流程"""
    return [
        {
            "sink": log_dir / "jot.log",
            "level": "INFO",
            "rotation": "1 day",
            "retention": "30 days",
            "compression": "zip",
        },
        {
            "sink": log_dir / "jot_error.log",
            "level": "ERROR",
            "rotation": "1 week",
            "retention": "90 days",
            "compression": "zip",
        },
        {
            "sink": log_dir / "pipeline.log",
            "level": "DEBUG",
            "rotation": "1 day",
            "retention": "7 days",
            "filter": lambda record: record["extra"].get("name") in PIPELINE_LOGGERS,
        },
    ]


def setup_logging(level: str = None):
    """
    设置应用日志

    Args:
        level: 控制台日志级别，默认按调试模式取 DEBUG 或 INFO
    """
    from jot.config import settings

    level = level or ("DEBUG" if settings.debug else "INFO")

    logger.remove()
    logger.configure(extra=DEFAULT_EXTRA)

    logger.add(
        sys.stdout,
        format=LOG_FORMAT,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=settings.debug
    )

    if settings.log_to_file:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(exist_ok=True)
        for sink in _file_sinks(log_dir):
            logger.add(format=LOG_FORMAT, backtrace=True, diagnose=False, **sink)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(name).handlers = [InterceptHandler()]

    if not settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str):
    """获取特定名称的日志器"""
    return logger.bind(name=name)


# 模块专用日志器
api_logger = get_logger("api")
service_logger = get_logger("service")
pipeline_logger = get_logger("pipeline")
ai_logger = get_logger("ai_service")
db_logger = get_logger("database")
audio_logger = get_logger("audio_processing")
