# zork_app/services/rate_limiter.py
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    """
    Counts requests per client in fixed windows stored in Redis
    (``INCR`` + ``EXPIRE``). Redis failures let the request through.
    """

    def __init__(self, redis_client, window_ms: int = 15 * 60 * 1000, max_requests: int = 100,
                 prefix: str = "ratelimit", clock: Callable[[], float] = time.time):
        self.redis = redis_client
        self.window_seconds = max(1, math.ceil(window_ms / 1000))
        self.max_requests = max_requests
        self.prefix = prefix
        self._clock = clock

    def hit(self, client_key: str) -> RateLimitDecision:
        now = self._clock()
        window = int(now // self.window_seconds)
        key = f"{self.prefix}:{client_key}:{window}"
        retry_after = max(1, int((window + 1) * self.window_seconds - now))

        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.window_seconds)
            count, _ = pipe.execute()
        except Exception as e:
            logger.error(f"Redis failure in rate limiter for {client_key}: {e}")
            return RateLimitDecision(allowed=True, remaining=self.max_requests, retry_after=0)

        count = int(count)
        if count > self.max_requests:
            logger.warning(f"Rate limit exceeded for {client_key}: {count}/{self.max_requests}.")
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count, retry_after=retry_after)


def build_rate_limiter(config, redis_client) -> Optional[FixedWindowRateLimiter]:
    if not config.get("RATE_LIMIT_ENABLED") or redis_client is None:
        return None
    return FixedWindowRateLimiter(
        redis_client,
        window_ms=config.get("RATE_LIMIT_WINDOW_MS", 15 * 60 * 1000),
        max_requests=config.get("RATE_LIMIT_MAX_REQUESTS", 100),
    )
