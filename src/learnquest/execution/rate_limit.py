"""Per-caller fixed-window limiter backed by Redis counters with TTL."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    limit: int
    retry_after: int


class ExecutionRateLimiter:
    """Counts requests per key per window in Redis so all instances share one budget."""

    def __init__(self, redis: Any, limit: int = 10, window_seconds: int = 60) -> None:  # noqa: ANN401
        self.redis = redis
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, key: str, now: float | None = None) -> RateLimitDecision:
        if now is None:
            now = time.time()
        window = int(now) // self.window_seconds
        rate_key = f"ratelimit:execute:{key}:{window}"

        pipe = self.redis.pipeline()
        pipe.incr(rate_key)
        pipe.expire(rate_key, self.window_seconds + 1)
        results: list[Any] = await pipe.execute()

        count: int = results[0]
        return RateLimitDecision(
            allowed=count <= self.limit,
            remaining=max(0, self.limit - count),
            limit=self.limit,
            retry_after=self.window_seconds - int(now) % self.window_seconds,
        )
