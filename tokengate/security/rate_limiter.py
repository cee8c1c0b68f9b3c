"""Redis-backed fixed-window rate limiter for the record API.

Usage:
    from tokengate.security.rate_limiter import rate_limiter

    allowed, retry_after = await rate_limiter.check("rate:10.0.0.1", limit=100, window=900)
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from tokengate.config import settings
from tokengate.db.engine import redis_client

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window limiter backed by Redis INCR + EXPIRE."""

    def __init__(self, redis: object) -> None:
        self._redis = redis

    async def check(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """Count one request against `key`.

        Returns (allowed, retry_after); retry_after is 0 when allowed.
        """
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window)

            if count > limit:
                ttl = await self._redis.ttl(key)
                return False, max(ttl, 1)

            return True, 0
        except Exception:
            logger.exception("Rate limiter Redis error for key %s", key)
            # Fail open — Redis outage must not take the API down
            return True, 0


rate_limiter = RateLimiter(redis_client)


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency — 429 once a client exceeds the configured window."""
    client = request.client.host if request.client else "unknown"
    allowed, retry_after = await rate_limiter.check(
        f"rate:{client}",
        limit=settings.rate_limit.rate_limit_requests,
        window=settings.rate_limit.rate_limit_window,
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(retry_after)},
        )
