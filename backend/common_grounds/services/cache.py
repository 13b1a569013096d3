"""Redis-backed read-through cache, counter store and publish channel."""

import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Thin wrapper over an async Redis client.

    Read and write failures are logged and treated as cache misses; the
    relational store stays the source of truth.
    """

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(Redis.from_url(url, decode_responses=True))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self.client.aclose()

    # =========================================================================
    # KEY/VALUE
    # =========================================================================

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.error("Redis get error for %s: %s", key, e)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            if ttl_seconds:
                await self.client.set(key, value, ex=ttl_seconds)
            else:
                await self.client.set(key, value)
        except RedisError as e:
            logger.error("Redis set error for %s: %s", key, e)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*keys)
        except RedisError as e:
            logger.error("Redis delete error for %s: %s", keys, e)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns how many were removed."""
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern, count=500)]
            if keys:
                await self.client.delete(*keys)
            return len(keys)
        except RedisError as e:
            logger.error("Redis delete pattern error for %s: %s", pattern, e)
            return 0

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self.set(key, json.dumps(value), ttl_seconds)

    # =========================================================================
    # COUNTERS / PUBSUB
    # =========================================================================

    async def increment_window(self, key: str, window_seconds: int) -> int:
        """
        Atomically increment a counter and (re)arm its expiry.

        Callers put the window start in the key, so re-arming never extends
        a window. Raises RedisError so callers can decide whether to fail open.
        """
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window_seconds)
            count, _ = await pipe.execute()
        return int(count)

    async def publish(self, channel: str, message: str) -> int:
        """Publish to a channel. Raises RedisError on failure."""
        return await self.client.publish(channel, message)


# =============================================================================
# KEYS
# =============================================================================


def class_search_key(subject: str, catalog_number: str, term: str) -> str:
    return f"class:{subject.upper()}:{catalog_number}:{term}"


def user_classes_key(user_id: Any, term: str | None = None) -> str:
    return f"user:classes:{user_id}:{term}" if term else f"user:classes:{user_id}"


def user_friends_key(user_id: Any) -> str:
    return f"user:friends:{user_id}"


def common_classes_key(user_id: Any, friend_id: Any) -> str:
    return f"common:classes:{user_id}:{friend_id}"


async def invalidate_enrollment_caches(cache: RedisCache, user_id: Any) -> None:
    """Forget everything derived from a user's enrollments."""
    await cache.delete_pattern(f"user:classes:{user_id}*")
    await cache.delete_pattern(f"common:classes:{user_id}:*")
    await cache.delete_pattern(f"common:classes:*:{user_id}")


async def invalidate_friend_caches(cache: RedisCache, *user_ids: Any) -> None:
    await cache.delete(*(user_friends_key(user_id) for user_id in user_ids))
