"""
Counter stores backing the gateway's rate limit tiers.

A store exposes one operation, ``increment(key, window_seconds)``, which
atomically bumps the counter for the current fixed window and returns the
post-increment count with the window's reset time. Windows are aligned to the
epoch and the window start is part of the storage key, so rolling over to a
new window is simply a new key: nobody has to "reset" a counter and two
concurrent callers can never both believe they opened the window.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CounterStoreError
from shared.logging import get_logger

Clock = Callable[[], float]


@dataclass(frozen=True)
class CounterRecord:
    """Post-increment view of one window counter."""

    key: str
    count: int
    reset_at: datetime


def window_bounds(now: float, window_seconds: int) -> Tuple[int, int]:
    """Return ``(window_start, reset_at)`` as epoch seconds."""
    start = int(now // window_seconds) * window_seconds
    return start, start + window_seconds


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


class CounterStore:
    """Interface implemented by every counter store."""

    name = "abstract"

    async def increment(self, key: str, window_seconds: int) -> CounterRecord:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisCounterStore(CounterStore):
    """Distributed fixed-window counters in Redis.

    ``INCR`` and ``EXPIRE`` run in one MULTI/EXEC transaction, so every call
    is counted exactly once regardless of how many gateway instances share
    the server.
    """

    name = "redis"
    KEY_PREFIX = "ratelimit"

    def __init__(self, redis_url: str, timeout: float = 2.0, clock: Clock = time.time):
        self.redis_url = redis_url
        self.timeout = timeout
        self.clock = clock
        self.logger = get_logger("gateway.counter_store")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                socket_timeout=self.timeout,
                socket_connect_timeout=self.timeout,
            )
        return self._redis

    def _make_key(self, key: str, window_start: int) -> str:
        """Generate the storage key for one window."""
        return f"{self.KEY_PREFIX}:{key}:{window_start}"

    async def increment(self, key: str, window_seconds: int) -> CounterRecord:
        window_start, reset_at = window_bounds(self.clock(), window_seconds)
        storage_key = self._make_key(key, window_start)

        try:
            redis_client = await self._get_redis()
            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.incr(storage_key)
                # One second of grace so a late reader never sees a vanished key mid-window
                pipeline.expire(storage_key, window_seconds + 1)
                results = await pipeline.execute()
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CounterStoreError(f"Redis counter store unavailable: {e}") from e

        return CounterRecord(key=key, count=int(results[0]), reset_at=_to_datetime(reset_at))

    async def ping(self) -> bool:
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except Exception as e:
            self.logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class LocalCounterStore(CounterStore):
    """In-process counters.

    Non-durable and single-instance only: counts vanish on restart and are
    not shared between processes. Meant for local development and tests.
    """

    name = "memory"

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        self._counters: Dict[Tuple[str, int, int], int] = {}
        self._lock = asyncio.Lock()

    async def increment(self, key: str, window_seconds: int) -> CounterRecord:
        now = self.clock()
        window_start, reset_at = window_bounds(now, window_seconds)

        async with self._lock:
            self._purge_expired(now)
            slot = (key, window_seconds, window_start)
            count = self._counters.get(slot, 0) + 1
            self._counters[slot] = count

        return CounterRecord(key=key, count=count, reset_at=_to_datetime(reset_at))

    def _purge_expired(self, now: float) -> None:
        expired = [
            slot for slot in self._counters if slot[2] + slot[1] <= now
        ]
        for slot in expired:
            del self._counters[slot]


class DisabledCounterStore(CounterStore):
    """Stand-in used when rate limiting is switched off.

    Every increment fails, which the coordinator treats as a degraded store
    and admits the request.
    """

    name = "disabled"

    async def increment(self, key: str, window_seconds: int) -> CounterRecord:
        raise CounterStoreError("Rate limiting is not configured")

    async def ping(self) -> bool:
        return False


def build_counter_store(backend: str, redis_url: Optional[str], timeout: float = 2.0) -> CounterStore:
    """Pick a counter store from configuration."""
    logger = get_logger("gateway.counter_store")
    backend = (backend or "auto").lower()

    if backend == "auto":
        backend = "redis" if redis_url else "memory"

    if backend == "redis":
        if not redis_url:
            logger.warning("Redis backend requested without a URL, rate limiting disabled")
            return DisabledCounterStore()
        return RedisCounterStore(redis_url, timeout=timeout)
    if backend == "memory":
        logger.warning("Using in-memory counter store; limits are per-process and reset on restart")
        return LocalCounterStore()
    if backend == "disabled":
        logger.warning("Rate limiting disabled, all requests will be admitted")
        return DisabledCounterStore()

    raise ValueError(f"Unknown counter store backend: {backend}")
