from datetime import timedelta

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from weather_proxy.utils.exceptions import CacheBackendError

from .base import CacheStore


class RedisCacheStore(CacheStore):
    """Redis implementation of the cache store"""

    def __init__(
        self,
        url: str,
        key_prefix: str = "",
        socket_timeout: float | None = None,
    ) -> None:
        super().__init__(key_prefix)
        self.url = url
        self.socket_timeout = socket_timeout
        self._client: Redis | None = None
        self.logger = structlog.get_logger(__name__).bind(provider="redis")

    async def connect(self) -> None:
        if self._client is not None:
            return

        # the client owns a connection pool; each command checks a
        # connection out and returns it when done
        self._client = Redis.from_url(
            self.url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        self.logger.info("redis_client_created")

    async def close(self) -> None:
        if self._client is None:
            return

        try:
            await self._client.aclose()
            self.logger.info("redis_client_closed")
        finally:
            self._client = None

    def _require_client(self) -> Redis:
        if self._client is None:
            raise CacheBackendError("Redis cache store is not connected")
        return self._client

    async def get(self, key: str) -> str | None:
        client = self._require_client()
        try:
            return await client.get(self._full_key(key))
        except RedisError as e:
            raise CacheBackendError(f"Redis GET failed: {e}", operation="get") from e

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        client = self._require_client()
        try:
            await client.set(
                self._full_key(key), value, px=int(ttl.total_seconds() * 1000)
            )
        except RedisError as e:
            raise CacheBackendError(f"Redis SET failed: {e}", operation="set") from e

    async def delete(self, key: str) -> bool:
        client = self._require_client()
        try:
            return await client.delete(self._full_key(key)) > 0
        except RedisError as e:
            raise CacheBackendError(
                f"Redis DEL failed: {e}", operation="delete"
            ) from e

    async def health_check(self) -> bool:
        try:
            return bool(await self._require_client().ping())
        except (RedisError, CacheBackendError) as e:
            self.logger.warning("health_check_failed", error=str(e))
            return False
