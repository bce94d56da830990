"""Fixed-window rate limiting keyed by caller identity.

The limiter talks to a ``RateLimitStore`` so the counter can live in process
memory (single worker, tests) or in Redis (shared between workers). Either
way this is advisory abuse mitigation, not an exact quota: the in-memory
store is only shared within one process.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis.asyncio as redis

_logger = logging.getLogger("kb_api.ratelimit")


@dataclass(frozen=True)
class WindowState:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    remaining: int
    retry_after_sec: int


class RateLimitStore(Protocol):
    async def get(self, key: str) -> WindowState | None: ...

    async def increment(self, key: str, window_sec: int) -> WindowState: ...

    async def reset(self, key: str) -> None: ...

    def now(self) -> float: ...


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, WindowState] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> WindowState | None:
        state = self._windows.get(key)
        if state is None or state.reset_at <= self._clock():
            return None
        return state

    async def increment(self, key: str, window_sec: int) -> WindowState:
        async with self._lock:
            now = self._clock()
            for expired in [k for k, s in self._windows.items() if s.reset_at <= now]:
                del self._windows[expired]
            state = self._windows.get(key)
            if state is None:
                state = WindowState(count=1, reset_at=now + window_sec)
            else:
                state = WindowState(count=state.count + 1, reset_at=state.reset_at)
            self._windows[key] = state
            return state

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)

    def now(self) -> float:
        return self._clock()


class RedisRateLimitStore:
    """Counter per key with a TTL equal to the window (INCR + EXPIRE)."""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit") -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> WindowState | None:
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        ttl = await self.client.ttl(self._key(key))
        return WindowState(count=int(raw), reset_at=time.time() + max(ttl, 0))

    async def increment(self, key: str, window_sec: int) -> WindowState:
        name = self._key(key)
        count = int(await self.client.incr(name))
        ttl = await self.client.ttl(name)
        if count == 1 or ttl < 0:
            # first hit of the window, or a key left without expiry
            await self.client.expire(name, window_sec)
            ttl = window_sec
        return WindowState(count=count, reset_at=time.time() + ttl)

    async def reset(self, key: str) -> None:
        await self.client.delete(self._key(key))

    def now(self) -> float:
        return time.time()


class FixedWindowRateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int,
        window_sec: int,
        scope: str = "code-executor",
    ) -> None:
        self.store = store
        self.max_requests = max_requests
        self.window_sec = window_sec
        self.scope = scope

    def _key(self, caller_id: str) -> str:
        return f"{self.scope}:{caller_id}"

    async def hit(self, caller_id: str) -> RateLimitDecision:
        """Count one call for ``caller_id`` and report whether it may proceed."""
        state = await self.store.increment(self._key(caller_id), self.window_sec)
        allowed = state.count <= self.max_requests
        retry_after = max(1, math.ceil(state.reset_at - self.store.now()))
        if not allowed:
            _logger.warning(
                "Rate limit exceeded: scope=%s caller=%s count=%d limit=%d",
                self.scope, caller_id, state.count, self.max_requests,
            )
        return RateLimitDecision(
            allowed=allowed,
            count=state.count,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - state.count),
            retry_after_sec=retry_after,
        )

    async def reset(self, caller_id: str) -> None:
        await self.store.reset(self._key(caller_id))
