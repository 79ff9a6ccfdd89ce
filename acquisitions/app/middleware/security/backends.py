"""Fixed-window counter stores for the rate policy.

A store counts hits per fingerprint inside a window that resets wholesale
once ``window_seconds`` have elapsed since its first hit. Increments for one
fingerprint are serialized; different fingerprints never contend.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import redis
import redis.asyncio as aioredis

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger
from acquisitions.app.exceptions import PolicyEngineError
from acquisitions.app.middleware.security.models import WindowState

logger = get_logger(__name__)


class WindowStore(ABC):
    """Abstract base class for window counter stores."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> WindowState:
        """Count one request for ``key`` and return the window state after it.

        Args:
            key: Request fingerprint
            window_seconds: Window length for this key's tier

        Returns:
            WindowState whose count includes this request
        """

    @abstractmethod
    async def cleanup(self) -> None:
        """Drop state for windows that have expired."""

    async def close(self) -> None:
        """Release any connections held by the store."""


@dataclass
class _WindowEntry:
    count: int = 0
    window_start: float = 0.0
    window_seconds: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def is_expired(self, now: float) -> bool:
        return now - self.window_start >= self.window_seconds


class InMemoryWindowStore(WindowStore):
    """Process-local window store.

    Each fingerprint owns its own lock, so a burst on one fingerprint never
    delays another. Size is bounded: expired windows are evicted first, then
    the least recently used entries that are not mid-update.
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: OrderedDict[str, _WindowEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.is_expired(now) and not e.lock.locked()]:
            del self._entries[key]

        if len(self._entries) < self._max_entries:
            return

        # Still full: drop the oldest 20% that nobody is updating
        to_remove = max(1, int(self._max_entries * 0.2))
        for key in list(self._entries):
            if to_remove == 0:
                break
            if not self._entries[key].lock.locked():
                del self._entries[key]
                to_remove -= 1

    def _get_entry(self, key: str, window_seconds: int) -> _WindowEntry:
        # No await between lookup and insert, so two coroutines cannot
        # create separate entries for the same key.
        entry = self._entries.get(key)
        if entry is None:
            if len(self._entries) >= self._max_entries:
                self._evict()
            entry = _WindowEntry(window_seconds=window_seconds)
            self._entries[key] = entry
        else:
            self._entries.move_to_end(key)
        return entry

    async def hit(self, key: str, window_seconds: int) -> WindowState:
        entry = self._get_entry(key, window_seconds)
        async with entry.lock:
            now = self._clock()
            entry.window_seconds = window_seconds
            if entry.count == 0 or entry.is_expired(now):
                entry.window_start = now
                entry.count = 0
            entry.count += 1
            return WindowState(
                count=entry.count,
                window_start=entry.window_start,
                reset_at=entry.window_start + window_seconds,
            )

    async def cleanup(self) -> None:
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if entry.is_expired(now) and not entry.lock.locked()
        ]
        for key in expired:
            del self._entries[key]


# Runs atomically inside Redis: concurrent hits from any process serialize
# on the key. A key found without a TTL gets one on the next hit.
HIT_SCRIPT = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 then
        redis.call('PEXPIRE', KEYS[1], ARGV[1])
    end
    local ttl = redis.call('PTTL', KEYS[1])
    if ttl < 0 then
        redis.call('PEXPIRE', KEYS[1], ARGV[1])
        ttl = tonumber(ARGV[1])
    end
    return {count, ttl}
"""


class RedisWindowStore(WindowStore):
    """Redis-backed window store shared by every API instance.

    Window expiry is delegated to key TTLs. Redis failures are raised as
    PolicyEngineError; requests are never let through unchecked.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        key_prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self._redis_url = redis_url or settings.redis_url
        self._key_prefix = key_prefix
        self._clock = clock

    def _get_redis(self) -> Any:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def hit(self, key: str, window_seconds: int) -> WindowState:
        window_ms = window_seconds * 1000
        try:
            count, ttl_ms = await self._get_redis().eval(
                HIT_SCRIPT, 1, f"{self._key_prefix}:{key}", window_ms
            )
        except redis.RedisError as e:
            logger.error(f"Redis window store error: {e}")
            raise PolicyEngineError(f"Rate limit store unavailable: {e}") from e

        reset_at = self._clock() + int(ttl_ms) / 1000
        return WindowState(
            count=int(count),
            window_start=reset_at - window_seconds,
            reset_at=reset_at,
        )

    async def cleanup(self) -> None:
        """No-op for Redis (keys expire automatically)."""

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_window_store() -> WindowStore:
    """Build the window store selected by settings."""
    if settings.redis_enabled:
        logger.info("Using Redis window store")
        return RedisWindowStore(redis_url=settings.redis_url)
    logger.debug("Using in-memory window store")
    return InMemoryWindowStore(max_entries=settings.rate_limit_max_entries)
