import time
from collections.abc import Callable
from datetime import timedelta

import structlog

from .base import CacheStore


class MemoryCacheStore(CacheStore):
    """
    In-process cache store with per-entry expiry.

    Expired entries are dropped when read, and writes sweep the whole store
    at most once per purge_interval seconds.
    """

    def __init__(
        self,
        key_prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
        purge_interval: float = 60.0,
    ) -> None:
        super().__init__(key_prefix)
        self._clock = clock
        self.purge_interval = purge_interval
        self._next_purge = clock() + purge_interval
        self._entries: dict[str, tuple[str, float]] = {}
        self.logger = structlog.get_logger(__name__).bind(provider="memory")

    async def get(self, key: str) -> str | None:
        full_key = self._full_key(key)
        entry = self._entries.get(full_key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[full_key]
            self.logger.debug("cache_entry_expired", key=full_key)
            return None

        return value

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        now = self._clock()
        if now >= self._next_purge:
            self.purge_expired()
            self._next_purge = now + self.purge_interval

        self._entries[self._full_key(key)] = (value, now + ttl.total_seconds())

    async def delete(self, key: str) -> bool:
        return self._entries.pop(self._full_key(key), None) is not None

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed"""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

        if expired:
            self.logger.info("expired_entries_purged", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
