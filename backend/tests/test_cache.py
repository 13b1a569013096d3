"""Tests for the Redis cache wrapper and the rate limiter."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from common_grounds.exceptions import RateLimitExceededError
from common_grounds.services.cache import (
    RedisCache,
    common_classes_key,
    invalidate_enrollment_caches,
    user_classes_key,
)
from common_grounds.services.rate_limit import RateLimiter


class UnreachableRedis:
    """Every call fails the way a dropped connection does."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    get = set = delete = ping = publish = _fail

    def scan_iter(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")


class FixedClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRedisCache:
    @pytest.mark.asyncio
    async def test_json_round_trip_with_ttl(self, cache, redis_client):
        await cache.set_json("k", {"a": [1, 2]}, ttl_seconds=60)

        assert await cache.get_json("k") == {"a": [1, 2]}
        assert 0 < await redis_client.ttl("k") <= 60

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self, cache, redis_client):
        await redis_client.set("k", "{not json")

        assert await cache.get_json("k") is None
        assert await redis_client.exists("k") == 0

    @pytest.mark.asyncio
    async def test_delete_pattern(self, cache):
        for key in ("user:classes:1", "user:classes:1:1268", "user:classes:2"):
            await cache.set(key, "x")

        removed = await cache.delete_pattern("user:classes:1*")

        assert removed == 2
        assert await cache.get("user:classes:2") == "x"

    @pytest.mark.asyncio
    async def test_enrollment_invalidation_scope(self, cache):
        await cache.set(user_classes_key("u1"), "x")
        await cache.set(common_classes_key("u1", "u2"), "x")
        await cache.set(common_classes_key("u2", "u1"), "x")
        await cache.set(common_classes_key("u2", "u3"), "x")

        await invalidate_enrollment_caches(cache, "u1")

        assert await cache.get(user_classes_key("u1")) is None
        assert await cache.get(common_classes_key("u1", "u2")) is None
        assert await cache.get(common_classes_key("u2", "u1")) is None
        assert await cache.get(common_classes_key("u2", "u3")) == "x"

    @pytest.mark.asyncio
    async def test_failures_degrade_to_misses(self):
        """Should never raise on reads or writes when Redis is down."""
        cache = RedisCache(UnreachableRedis())

        assert await cache.get("k") is None
        assert await cache.get_json("k") is None
        await cache.set("k", "v")
        await cache.delete("k")
        assert await cache.delete_pattern("k*") == 0
        assert await cache.ping() is False

    @pytest.mark.asyncio
    async def test_publish_propagates_errors(self):
        cache = RedisCache(UnreachableRedis())
        with pytest.raises(RedisConnectionError):
            await cache.publish("class:1:messages", "{}")


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, cache):
        limiter = RateLimiter(cache, clock=FixedClock(7200))

        counts = [
            await limiter.hit("magic_link", "1.2.3.4", limit=3, window_seconds=3600)
            for _ in range(3)
        ]

        assert counts == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_rejects_past_limit_with_retry_after(self, cache):
        clock = FixedClock(7200 + 600)
        limiter = RateLimiter(cache, clock=clock)
        for _ in range(3):
            await limiter.hit("magic_link", "1.2.3.4", limit=3, window_seconds=3600)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.hit("magic_link", "1.2.3.4", limit=3, window_seconds=3600)

        assert exc_info.value.retry_after == 3000

    @pytest.mark.asyncio
    async def test_identities_and_scopes_are_separate(self, cache):
        limiter = RateLimiter(cache, clock=FixedClock(7200))
        await limiter.hit("magic_link", "a", limit=1, window_seconds=3600)

        assert await limiter.hit("magic_link", "b", limit=1, window_seconds=3600) == 1
        assert await limiter.hit("messages", "a", limit=1, window_seconds=3600) == 1

    @pytest.mark.asyncio
    async def test_new_window_resets(self, cache):
        clock = FixedClock(7200)
        limiter = RateLimiter(cache, clock=clock)
        await limiter.hit("messages", "a", limit=1, window_seconds=3600)

        clock.now += 3600

        assert await limiter.hit("messages", "a", limit=1, window_seconds=3600) == 1

    @pytest.mark.asyncio
    async def test_fails_open(self):
        class BrokenCounter:
            async def increment_window(self, key, window_seconds):
                raise RedisConnectionError("connection refused")

        limiter = RateLimiter(BrokenCounter(), clock=FixedClock(7200))

        for _ in range(10):
            assert await limiter.hit("messages", "a", limit=1, window_seconds=3600) == 0
