"""Tests for fixed-window rate limiting."""

import pytest
import fakeredis.aioredis as fakeredis

from kb_api.sandbox.ratelimit import (
    FixedWindowRateLimiter,
    InMemoryRateLimitStore,
    RedisRateLimitStore,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestInMemoryLimiter:
    """Window arithmetic against a controllable clock."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(FakeClock()), 3, 60)
        decisions = [await limiter.hit("alice") for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert decisions[-1].count == 4

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(clock), 1, 60)
        await limiter.hit("alice")
        clock.now += 45
        decision = await limiter.hit("alice")
        assert not decision.allowed
        assert decision.retry_after_sec == 15

    @pytest.mark.asyncio
    async def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(clock), 1, 60)
        await limiter.hit("alice")
        assert not (await limiter.hit("alice")).allowed
        clock.now += 60
        decision = await limiter.hit("alice")
        assert decision.allowed
        assert decision.count == 1

    @pytest.mark.asyncio
    async def test_callers_are_independent(self):
        limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(FakeClock()), 1, 60)
        assert (await limiter.hit("alice")).allowed
        assert (await limiter.hit("bob")).allowed
        assert not (await limiter.hit("alice")).allowed

    @pytest.mark.asyncio
    async def test_scopes_share_store_without_collision(self):
        store = InMemoryRateLimitStore(FakeClock())
        executions = FixedWindowRateLimiter(store, 1, 60, scope="code-executor")
        assistant = FixedWindowRateLimiter(store, 1, 60, scope="ai-assistant")
        assert (await executions.hit("alice")).allowed
        assert (await assistant.hit("alice")).allowed

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = FixedWindowRateLimiter(InMemoryRateLimitStore(FakeClock()), 1, 60)
        await limiter.hit("alice")
        await limiter.reset("alice")
        assert (await limiter.hit("alice")).allowed

    @pytest.mark.asyncio
    async def test_store_get_expires(self):
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock)
        await store.increment("k", 10)
        assert (await store.get("k")).count == 1
        clock.now += 10
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_windows_are_dropped(self):
        clock = FakeClock()
        store = InMemoryRateLimitStore(clock)
        for caller in ("a", "b", "c"):
            await store.increment(caller, 10)
        clock.now += 10
        await store.increment("d", 10)
        assert list(store._windows) == ["d"]


class TestRedisLimiter:
    """Counters in Redis via INCR + EXPIRE."""

    @pytest.mark.asyncio
    async def test_counts_and_expires(self):
        client = fakeredis.FakeRedis(decode_responses=True)
        limiter = FixedWindowRateLimiter(RedisRateLimitStore(client), 2, 30)

        decisions = [await limiter.hit("alice") for _ in range(3)]
        assert [d.allowed for d in decisions] == [True, True, False]
        assert await client.get("ratelimit:code-executor:alice") == "3"
        ttl = await client.ttl("ratelimit:code-executor:alice")
        assert 0 < ttl <= 30
        assert 1 <= decisions[-1].retry_after_sec <= 30

    @pytest.mark.asyncio
    async def test_key_without_ttl_gets_one(self):
        client = fakeredis.FakeRedis(decode_responses=True)
        await client.set("ratelimit:code-executor:alice", 5)
        limiter = FixedWindowRateLimiter(RedisRateLimitStore(client), 10, 30)
        await limiter.hit("alice")
        assert await client.ttl("ratelimit:code-executor:alice") > 0

    @pytest.mark.asyncio
    async def test_reset_and_get(self):
        client = fakeredis.FakeRedis(decode_responses=True)
        store = RedisRateLimitStore(client, prefix="rl")
        await store.increment("k", 30)
        assert (await store.get("k")).count == 1
        await store.reset("k")
        assert await store.get("k") is None
