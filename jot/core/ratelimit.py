"""
速率限制 - 按用户、按操作类型的固定窗口计数器
"""

import time
from typing import Any, Callable, Dict, Optional

from jot.config import settings
from jot.core.cache import redis_manager
from jot.core.exceptions import RateLimitException
from jot.core.logging import api_logger


class RateLimiter:
    """
    固定窗口速率限制器

    每个 (操作, 用户, 窗口序号) 对应一个Redis键，INCR 后设置 2 倍窗口的过期时间。
    计数器存储不可用或出错时放行请求，只记录日志。
    """

    def __init__(
        self,
        redis_getter: Callable[[], Any] = None,
        clock: Callable[[], float] = time.time
    ):
        self._redis_getter = redis_getter or (lambda: redis_manager.redis_client)
        self._clock = clock

    @staticmethod
    def window_key(operation: str, user_id: str, window: int, now: float) -> str:
        """生成当前窗口的键"""
        return f"ratelimit:{operation}:{user_id}:{int(now // window)}"

    async def hit(
        self,
        operation: str,
        user_id: str,
        limit: Optional[int] = None,
        window: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        记录一次请求并检查是否超限

        Args:
            operation: 操作类型，如 presign、commit、search、regenerate
            user_id: 调用者ID
            limit: 窗口内允许的最大请求数
            window: 窗口长度(秒)

        Returns:
            Dict[str, Any]: 计数信息

        Raises:
            RateLimitException: 超过窗口内的最大请求数
        """
        preset = getattr(settings, f"rate_limit_{operation}", None) or {}
        rate_limit = limit or preset.get("max", 100)
        time_window = window or preset.get("window", 60)

        now = self._clock()
        key = self.window_key(operation, user_id, time_window, now)
        reset_time = (int(now // time_window) + 1) * time_window
        retry_after = max(1, int(reset_time - now))

        redis_client = self._redis_getter()
        if redis_client is None:
            api_logger.warning(f"Rate limit store not configured, allowing {operation} for {user_id}")
            return {"limited": False, "skipped": True}

        try:
            async with redis_client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, time_window * 2)
                results = await pipe.execute()
            count = results[0]
        except Exception as e:
            # 出错时不限制
            api_logger.error(f"Rate limit check failed for {key}, allowing request: {e}")
            return {"limited": False, "error": str(e)}

        if isinstance(count, int) and count > rate_limit:
            api_logger.warning(f"Rate limit exceeded: {key} count={count} limit={rate_limit}")
            raise RateLimitException(
                f"Rate limit exceeded: {rate_limit} requests per {time_window}s",
                retry_after=retry_after
            )

        return {
            "limited": False,
            "current_requests": count,
            "limit": rate_limit,
            "remaining": max(0, rate_limit - count) if isinstance(count, int) else None,
            "reset_time": int(reset_time)
        }


# 全局限流器实例
rate_limiter = RateLimiter()
