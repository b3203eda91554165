"""
速率限制测试
"""

from typing import Dict

import pytest

from jot.core.exceptions import RateLimitException
from jot.core.ratelimit import RateLimiter


class FakePipeline:
    """模拟 redis.asyncio 的事务管道"""

    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def incr(self, key):
        self.commands.append(("incr", key))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))
        return self

    async def execute(self):
        if self.redis.fail:
            raise ConnectionError("redis down")
        results = []
        for command in self.commands:
            if command[0] == "incr":
                self.redis.counters[command[1]] = self.redis.counters.get(command[1], 0) + 1
                results.append(self.redis.counters[command[1]])
            else:
                self.redis.expiries[command[1]] = command[2]
                results.append(True)
        return results


class FakeRedis:

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.counters: Dict[str, int] = {}
        self.expiries: Dict[str, int] = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakeClock:

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimiter:
    """固定窗口限流测试"""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        redis = FakeRedis()
        limiter = RateLimiter(redis_getter=lambda: redis, clock=FakeClock())

        for i in range(3):
            result = await limiter.hit("commit", "user-1", limit=3, window=60)
            assert result["current_requests"] == i + 1

        with pytest.raises(RateLimitException) as exc_info:
            await limiter.hit("commit", "user-1", limit=3, window=60)

        assert exc_info.value.code == "RATE_LIMIT_EXCEEDED"
        assert 1 <= exc_info.value.retry_after <= 60

    @pytest.mark.asyncio
    async def test_key_and_expiry(self):
        redis = FakeRedis()
        limiter = RateLimiter(redis_getter=lambda: redis, clock=FakeClock(now=125.0))

        await limiter.hit("search", "user-1", limit=5, window=60)

        assert redis.counters == {"ratelimit:search:user-1:2": 1}
        assert redis.expiries == {"ratelimit:search:user-1:2": 120}

    @pytest.mark.asyncio
    async def test_new_window_resets(self):
        redis = FakeRedis()
        clock = FakeClock(now=0.0)
        limiter = RateLimiter(redis_getter=lambda: redis, clock=clock)

        await limiter.hit("commit", "user-1", limit=1, window=60)
        with pytest.raises(RateLimitException):
            await limiter.hit("commit", "user-1", limit=1, window=60)

        clock.now = 61.0
        result = await limiter.hit("commit", "user-1", limit=1, window=60)
        assert result["current_requests"] == 1

    @pytest.mark.asyncio
    async def test_users_and_operations_isolated(self):
        redis = FakeRedis()
        limiter = RateLimiter(redis_getter=lambda: redis, clock=FakeClock())

        await limiter.hit("commit", "user-1", limit=1, window=60)
        await limiter.hit("commit", "user-2", limit=1, window=60)
        await limiter.hit("presign", "user-1", limit=1, window=60)

    @pytest.mark.asyncio
    async def test_uses_configured_preset(self):
        redis = FakeRedis()
        limiter = RateLimiter(redis_getter=lambda: redis, clock=FakeClock())

        # regenerate 默认每分钟10次
        for _ in range(10):
            await limiter.hit("regenerate", "user-1")
        with pytest.raises(RateLimitException):
            await limiter.hit("regenerate", "user-1")

    @pytest.mark.asyncio
    async def test_fails_open_without_store(self):
        limiter = RateLimiter(redis_getter=lambda: None)
        result = await limiter.hit("commit", "user-1", limit=0, window=60)
        assert result["limited"] is False
        assert result["skipped"] is True

    @pytest.mark.asyncio
    async def test_fails_open_on_store_error(self):
        redis = FakeRedis(fail=True)
        limiter = RateLimiter(redis_getter=lambda: redis)

        for _ in range(5):
            result = await limiter.hit("commit", "user-1", limit=1, window=60)
            assert result["limited"] is False
