"""Rate limiting service using Redis.

Per-user sliding-window limits for search endpoints, which spend the
user's third-party API quota.

Redis keys:
- rate:{scope}:{user_id} - Sorted set of request timestamps in the window

Fail modes:
- Redis unavailable or erroring: fail open (request allowed, warning logged)
"""

import time
import uuid
from uuid import UUID

from socialbro.errors import ApiError, ApiErrorCode
from socialbro.logging import get_logger
from socialbro.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_RPM_LIMIT = 30  # Requests per minute
RPM_WINDOW_SECONDS = 60


class RateLimiter:
    """Rate limiter using Redis.

    Thread-safe for use in FastAPI endpoints.
    """

    def __init__(self, redis_client=None, rpm_limit: int = DEFAULT_RPM_LIMIT):
        """Initialize rate limiter.

        Args:
            redis_client: Redis client instance (sync). If None, limits are not enforced.
            rpm_limit: Maximum requests per minute per user and scope.
        """
        self._redis = redis_client
        self._rpm_limit = rpm_limit

    @property
    def rpm_limit(self) -> int:
        return self._rpm_limit

    @property
    def redis_available(self) -> bool:
        """Check if Redis is available."""
        if self._redis is None:
            return False
        try:
            self._redis.ping()
            return True
        except Exception:
            return False

    def check_rpm_limit(self, user_id: UUID, scope: str = "search") -> None:
        """Record a request and enforce the per-minute limit.

        Fails open if Redis unavailable.

        Raises:
            ApiError(E_RATE_LIMITED): If the limit is exceeded.
        """
        if not self.redis_available:
            logger.warning("rate_limit_redis_unavailable", scope=scope)
            return

        try:
            key = f"rate:{scope}:{user_id}"
            now_ts = time.time()
            window_start_ts = now_ts - RPM_WINDOW_SECONDS

            pipe = self._redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start_ts)
            pipe.zadd(key, {f"{now_ts}:{uuid.uuid4().hex}": now_ts})
            pipe.zcount(key, window_start_ts, now_ts)
            pipe.expire(key, RPM_WINDOW_SECONDS * 2)

            results = pipe.execute()
            count = results[2]

            if count > self._rpm_limit:
                logger.warning(
                    "rate_limit_blocked",
                    **safe_kv(user_id=str(user_id), scope=scope, limit=self._rpm_limit),
                )
                raise ApiError(
                    ApiErrorCode.E_RATE_LIMITED,
                    "Rate limit exceeded. Please try again later.",
                )

        except ApiError:
            raise
        except Exception as e:
            logger.warning("rate_limit_check_failed", scope=scope, error=str(e))


# Global rate limiter instance (initialized by app startup)
_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get the global rate limiter instance.

    Returns a no-op limiter if not initialized (for testing without Redis).
    """
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(redis_client=None)
    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter) -> None:
    """Set the global rate limiter instance.

    Called by app startup to configure Redis.
    """
    global _rate_limiter
    _rate_limiter = limiter
