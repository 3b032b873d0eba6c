from abc import ABC, abstractmethod
from datetime import timedelta


class CacheStore(ABC):
    """Abstract base class for cache backends (memory, Redis, SQLite, DynamoDB)"""

    def __init__(self, key_prefix: str = "") -> None:
        self.key_prefix = key_prefix

    @property
    def name(self) -> str:
        return type(self).__name__

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def connect(self) -> None:
        """Acquire backend resources. Called once at application startup."""

    async def close(self) -> None:
        """Release backend resources. Called once at application shutdown."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """
        Get a stored payload

        Args:
            key: Logical cache key (without namespace prefix)

        Returns:
            Serialized payload, or None if absent or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        """
        Store a payload, overwriting any existing entry

        Args:
            key: Logical cache key (without namespace prefix)
            value: Serialized payload
            ttl: Time until the entry expires, relative to now
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove an entry

        Args:
            key: Logical cache key (without namespace prefix)

        Returns:
            True if an entry was removed, False otherwise
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is reachable

        Returns:
            True if healthy, False otherwise
        """
        pass
