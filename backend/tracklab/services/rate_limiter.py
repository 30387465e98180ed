"""Rate limiting for SDK tracking endpoints using Redis."""
import redis
import time
from functools import lru_cache
from typing import Tuple

from tracklab.config import get_settings


class RateLimiter:
    """Redis-based fixed window rate limiter.

    Keys are ``tracker_rate:{key}:{window_id}`` where window_id is the epoch
    second divided by the window length, so every window starts fresh.
    """

    def __init__(self, redis_client: redis.Redis, limit: int = 60, window: int = 60):
        self.redis = redis_client
        self.limit = limit
        self.window = window

    def _get_window_key(self, key: str) -> str:
        window_id = int(time.time()) // self.window
        return f"tracker_rate:{key}:{window_id}"

    def check_rate_limit(self, key: str) -> Tuple[bool, int]:
        """
        Count one request against `key` and report whether it is allowed.

        Returns:
            Tuple of (allowed: bool, current_count: int)

        Example:
            >>> limiter = RateLimiter(redis_client, limit=60, window=60)
            >>> allowed, count = limiter.check_rate_limit("project:203.0.113.7")
        """
        window_key = self._get_window_key(key)

        current = self.redis.get(window_key)
        if current and int(current) >= self.limit:
            return False, int(current)

        # Increment counter atomically
        pipe = self.redis.pipeline()
        pipe.incr(window_key)
        pipe.expire(window_key, self.window)
        results = pipe.execute()

        new_count = int(results[0])
        return new_count <= self.limit, new_count

    def get_remaining(self, key: str) -> int:
        """Get remaining requests in current window."""
        current = self.redis.get(self._get_window_key(key))
        used = int(current) if current else 0
        return max(0, self.limit - used)


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter for SDK endpoints (overridable as a dependency)."""
    settings = get_settings()
    return RateLimiter(
        redis.from_url(settings.redis_url),
        limit=settings.tracking_rate_limit,
        window=settings.tracking_rate_window
    )
