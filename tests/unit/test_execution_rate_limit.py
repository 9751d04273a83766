"""Fixed-window execution limiter backed by Redis counters."""

import pytest

from learnquest.execution.rate_limit import ExecutionRateLimiter


class TestExecutionRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, fake_redis):
        limiter = ExecutionRateLimiter(fake_redis, limit=3, window_seconds=60)
        decisions = [await limiter.hit("user-1", now=1_000.0) for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[0].remaining == 2
        assert decisions[-1].remaining == 0

    @pytest.mark.asyncio
    async def test_counters_are_per_caller(self, fake_redis):
        limiter = ExecutionRateLimiter(fake_redis, limit=1, window_seconds=60)
        assert (await limiter.hit("user-1", now=1_000.0)).allowed
        assert (await limiter.hit("user-2", now=1_000.0)).allowed
        assert not (await limiter.hit("user-1", now=1_000.0)).allowed

    @pytest.mark.asyncio
    async def test_new_window_resets(self, fake_redis):
        limiter = ExecutionRateLimiter(fake_redis, limit=1, window_seconds=60)
        assert (await limiter.hit("user-1", now=1_000.0)).allowed
        assert not (await limiter.hit("user-1", now=1_010.0)).allowed
        assert (await limiter.hit("user-1", now=1_080.0)).allowed

    @pytest.mark.asyncio
    async def test_keys_expire_with_window(self, fake_redis):
        limiter = ExecutionRateLimiter(fake_redis, limit=5, window_seconds=60)
        decision = await limiter.hit("user-1", now=1_000.0)
        assert set(fake_redis.ttls.values()) == {61}
        # 1000 % 60 == 40, so 20 seconds remain in the window
        assert decision.retry_after == 20
