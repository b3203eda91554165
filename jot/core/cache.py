"""
Redis连接管理 - 为限流计数器提供原子自增存储
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional
import redis.asyncio as aioredis

from jot.config import settings
from loguru import logger


@dataclass
class RedisConfig:
    """Redis连接配置"""
    max_connections: int = 10  # 最大连接数
    socket_timeout: float = 2.0  # 读写超时（秒）
    socket_connect_timeout: float = 2.0  # 连接超时（秒）
    retry_on_timeout: bool = False  # 限流不重试，失败即放行
    socket_keepalive: bool = True  # Socket保活
    socket_keepalive_options: Dict = None  # Socket保活选项


class RedisManager:
    """Redis连接管理器"""

    def __init__(self, config: RedisConfig = None):
        self.config = config or RedisConfig()
        self.redis_client: Optional[aioredis.Redis] = None
        self.connection_pool: Optional[aioredis.ConnectionPool] = None
        self.is_healthy = False

    async def initialize(self, redis_url: str = None):
        """初始化Redis连接；连接失败时记录日志并继续（限流将放行）"""
        redis_url = redis_url or settings.redis_url

        self.connection_pool = aioredis.ConnectionPool.from_url(
            redis_url,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_connect_timeout,
            socket_keepalive=self.config.socket_keepalive,
            socket_keepalive_options=self.config.socket_keepalive_options or {},
            retry_on_timeout=self.config.retry_on_timeout,
            decode_responses=True
        )
        self.redis_client = aioredis.Redis(connection_pool=self.connection_pool)

        try:
            await asyncio.wait_for(self.redis_client.ping(), timeout=self.config.socket_connect_timeout)
            self.is_healthy = True
            logger.info("Redis连接成功")
        except Exception as e:
            # 客户端保留，后续请求仍会尝试；限流器在出错时放行
            self.is_healthy = False
            logger.warning(f"Redis连接失败，限流将放行请求: {e}")

    async def shutdown(self):
        """关闭Redis连接"""
        try:
            if self.redis_client:
                await self.redis_client.aclose()

            if self.connection_pool:
                await self.connection_pool.disconnect()

            logger.info("Redis连接已关闭")

        except Exception as e:
            logger.error(f"关闭Redis连接失败: {e}")
        finally:
            self.redis_client = None
            self.connection_pool = None
            self.is_healthy = False


# 全局Redis管理器实例
redis_manager = RedisManager()
