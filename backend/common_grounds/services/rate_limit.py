"""Fixed-window rate limiting backed by the shared cache."""

import logging
import time

from redis.exceptions import RedisError

from common_grounds.exceptions import RateLimitExceededError
from common_grounds.services.cache import RedisCache

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Counts hits per (scope, caller) inside fixed time windows.

    Counters live in Redis so limits survive restarts and hold across
    instances. If Redis is down the limiter lets requests through.
    """

    def __init__(self, cache: RedisCache, clock=time.time):
        self.cache = cache
        self._clock = clock

    async def hit(
        self,
        scope: str,
        identity: str,
        *,
        limit: int,
        window_seconds: int,
        message: str = "Too many requests. Please try again later.",
    ) -> int:
        """Record one hit; raise RateLimitExceededError past `limit`. Returns the count."""
        now = int(self._clock())
        window_start = now - (now % window_seconds)
        key = f"ratelimit:{scope}:{identity}:{window_start}"

        try:
            count = await self.cache.increment_window(key, window_seconds)
        except RedisError as e:
            logger.warning("Rate limiter unavailable for %s, allowing request: %s", scope, e)
            return 0

        if count > limit:
            retry_after = window_start + window_seconds - now
            logger.info("Rate limit hit: scope=%s identity=%s count=%d", scope, identity, count)
            raise RateLimitExceededError(message, retry_after=retry_after)
        return count
