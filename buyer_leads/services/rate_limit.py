from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import redis.asyncio as redis

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import RateLimitError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.services.redis import get_redis_client

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    limit: int
    remaining: int
    reset_at: int

    @property
    def retry_after(self) -> int:
        return max(0, self.reset_at - int(time.time()))


class RateLimiter(Protocol):
    async def check(self, key: str) -> RateLimitStatus:
        """Count one hit for ``key``; raise :class:`RateLimitError` once over the limit."""
        ...


class RedisRateLimiter:
    """Fixed-window counter in Redis (INCR + EXPIRE per window)."""

    def __init__(
        self,
        limit: int,
        period: int,
        redis_factory: Callable[[], Awaitable[redis.Redis]] = get_redis_client,
        prefix: str = "ratelimit",
    ):
        self.limit = limit
        self.period = period
        self.prefix = prefix
        self._redis_factory = redis_factory
        self._redis: Optional[redis.Redis] = None

    async def check(self, key: str) -> RateLimitStatus:
        window = int(time.time() // self.period)
        reset_at = (window + 1) * self.period
        redis_key = f"{self.prefix}:{key}:{window}"

        try:
            if self._redis is None:
                self._redis = await self._redis_factory()

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, self.period)
                results = await pipe.execute()
            current_count = int(results[0])

        except Exception as e:
            logger.error("rate_limit.error", error=str(e), key=key[:50])
            # Allow requests if Redis fails (fail-open)
            return RateLimitStatus(limit=self.limit, remaining=self.limit, reset_at=reset_at)

        status = RateLimitStatus(
            limit=self.limit,
            remaining=max(0, self.limit - current_count),
            reset_at=reset_at,
        )

        if current_count > self.limit:
            logger.warning("rate_limit.exceeded", key=key[:50], count=current_count, retry_after=status.retry_after)
            raise RateLimitError(
                message="Too many requests. Please try again later.",
                retry_after=status.retry_after,
                details={
                    "limit": self.limit,
                    "period": self.period,
                    "retry_after": status.retry_after,
                    "reset_at": status.reset_at,
                },
            )

        return status


def create_rate_limiter() -> RedisRateLimiter:
    return RedisRateLimiter(
        limit=settings.create_rate_limit,
        period=settings.create_rate_limit_period,
    )
