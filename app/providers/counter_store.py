import time
from typing import Callable, Dict, Protocol, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.utils.logging import get_logger

logger = get_logger()


class CounterStoreError(Exception):
    """The counter backend could not be reached."""


class CounterStore(Protocol):
    """Fixed-window counters keyed by client."""

    async def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """Increment ``key`` and return (count in window, seconds until reset)."""
        ...

    async def close(self) -> None:
        ...


class RedisCounterStore:
    def __init__(self, url: str, key_prefix: str = "ratelimit"):
        self.redis = redis.from_url(url, encoding="utf-8", decode_responses=True)
        self.key_prefix = key_prefix

    async def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        redis_key = f"{self.key_prefix}:{key}"
        try:
            count = await self.redis.incr(redis_key)
            ttl = await self.redis.ttl(redis_key)
            # First hit of a window, or a key left without expiry
            if count == 1 or ttl < 0:
                await self.redis.expire(redis_key, window_seconds)
                ttl = window_seconds
        except RedisError as e:
            raise CounterStoreError(str(e)) from e
        return count, ttl

    async def close(self) -> None:
        await self.redis.aclose()


class InMemoryCounterStore:
    """Single-process store for development and tests."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 60.0,
    ):
        self.clock = clock
        self.sweep_interval_seconds = sweep_interval_seconds
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = clock() + sweep_interval_seconds

    async def increment(self, key: str, window_seconds: int) -> Tuple[int, int]:
        now = self.clock()
        if now >= self._next_sweep:
            self._evict_expired(now)

        count, expires_at = self._windows.get(key, (0, 0.0))
        if expires_at <= now:
            count, expires_at = 0, now + window_seconds
        count += 1
        self._windows[key] = (count, expires_at)
        return count, max(1, int(round(expires_at - now)))

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._windows.items() if expires_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval_seconds

    def tracked_keys(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()

    async def close(self) -> None:
        self.reset()
