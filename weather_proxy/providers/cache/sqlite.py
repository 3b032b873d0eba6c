import sqlite3
import time
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import aiosqlite
import structlog

from weather_proxy.utils.exceptions import CacheBackendError

from .base import CacheStore


class SQLiteCacheStore(CacheStore):
    """SQLite implementation of the cache store, for single-host deployments"""

    def __init__(
        self,
        db_path: str,
        key_prefix: str = "",
        clock: Callable[[], float] = time.time,
        purge_interval: float = 300.0,
    ) -> None:
        super().__init__(key_prefix)
        self.db_path = db_path
        self._clock = clock
        self.purge_interval = purge_interval
        self._next_purge = clock() + purge_interval
        self._initialized = False
        self.logger = structlog.get_logger(__name__).bind(
            provider="sqlite", db_path=self.db_path
        )

    def _ensure_db_directory(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path)

    async def connect(self) -> None:
        if self._initialized:
            return

        try:
            self._ensure_db_directory()
            async with self._connect() as db:
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cache_entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL NOT NULL
                    )
                    """
                )
                await db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_expires_at ON cache_entries(expires_at)"
                )
                await db.commit()
        except (OSError, sqlite3.Error) as e:
            self.logger.error("sqlite_initialize_failed", error=str(e))
            raise CacheBackendError(
                f"Failed to initialize SQLite cache: {e}", operation="connect"
            ) from e

        self._initialized = True
        self.logger.info("sqlite_cache_initialized")

    async def get(self, key: str) -> str | None:
        full_key = self._full_key(key)
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    "SELECT value, expires_at FROM cache_entries WHERE key = ?",
                    (full_key,),
                )
                row = await cursor.fetchone()
                if row is None:
                    return None

                value, expires_at = row
                if self._clock() >= expires_at:
                    await db.execute(
                        "DELETE FROM cache_entries WHERE key = ? AND expires_at = ?",
                        (full_key, expires_at),
                    )
                    await db.commit()
                    return None

                return value

        except sqlite3.Error as e:
            raise CacheBackendError(
                f"SQLite cache read failed: {e}", operation="get"
            ) from e

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        now = self._clock()
        try:
            async with self._connect() as db:
                if now >= self._next_purge:
                    # rows nobody reads again would otherwise stay forever
                    cursor = await db.execute(
                        "DELETE FROM cache_entries WHERE expires_at <= ?", (now,)
                    )
                    self._next_purge = now + self.purge_interval
                    if cursor.rowcount:
                        self.logger.info(
                            "expired_entries_purged", count=cursor.rowcount
                        )

                await db.execute(
                    """
                    INSERT INTO cache_entries (key, value, expires_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        expires_at = excluded.expires_at
                    """,
                    (self._full_key(key), value, now + ttl.total_seconds()),
                )
                await db.commit()

        except sqlite3.Error as e:
            raise CacheBackendError(
                f"SQLite cache write failed: {e}", operation="set"
            ) from e

    async def delete(self, key: str) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute(
                    "DELETE FROM cache_entries WHERE key = ?", (self._full_key(key),)
                )
                await db.commit()
                return cursor.rowcount > 0

        except sqlite3.Error as e:
            raise CacheBackendError(
                f"SQLite cache delete failed: {e}", operation="delete"
            ) from e

    async def health_check(self) -> bool:
        try:
            async with self._connect() as db:
                cursor = await db.execute("SELECT 1")
                result = await cursor.fetchone()
                return result is not None

        except (OSError, sqlite3.Error) as e:
            self.logger.error("health_check_failed", error=str(e))
            return False
