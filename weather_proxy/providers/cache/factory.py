"""Cache store factory selecting a backend from the CACHE_URL connection string"""

from urllib.parse import parse_qs, urlsplit

import structlog

from weather_proxy.config.settings import Settings
from weather_proxy.utils.exceptions import ConfigurationError

from .base import CacheStore

logger = structlog.get_logger(__name__)


def _sqlite_path(cache_url: str) -> str:
    # sqlite:///relative/path.db or sqlite:////absolute/path.db
    path = cache_url[len("sqlite:///") :] if cache_url.startswith("sqlite:///") else ""
    if not path:
        raise ConfigurationError(
            "CACHE_URL for sqlite must look like sqlite:///path/to/cache.db"
        )
    return path


def create_cache_store(settings: Settings) -> CacheStore:
    """Create the cache store configured by settings.cache_url"""
    parts = urlsplit(settings.cache_url)
    scheme = parts.scheme
    prefix = settings.cache_key_prefix

    if scheme == "memory":
        from .memory import MemoryCacheStore

        logger.info("Creating memory cache store")
        return MemoryCacheStore(key_prefix=prefix)

    if scheme in ("redis", "rediss", "unix"):
        try:
            from .redis import RedisCacheStore
        except ImportError as e:
            raise ConfigurationError(
                "redis is required for the Redis cache backend. "
                "Install with: pip install redis"
            ) from e

        logger.info("Creating Redis cache store", host=parts.hostname)
        return RedisCacheStore(
            settings.cache_url,
            key_prefix=prefix,
            socket_timeout=settings.cache_operation_timeout,
        )

    if scheme == "sqlite":
        try:
            from .sqlite import SQLiteCacheStore
        except ImportError as e:
            raise ConfigurationError(
                "aiosqlite is required for the SQLite cache backend. "
                "Install with: pip install aiosqlite"
            ) from e

        db_path = _sqlite_path(settings.cache_url)
        logger.info("Creating SQLite cache store", db_path=db_path)
        return SQLiteCacheStore(db_path, key_prefix=prefix)

    if scheme == "dynamodb":
        table_name = parts.netloc
        if not table_name:
            raise ConfigurationError(
                "CACHE_URL for dynamodb must look like dynamodb://table-name"
            )

        try:
            from .dynamodb import DynamoDBCacheStore
        except ImportError as e:
            raise ConfigurationError(
                "aioboto3 is required for the DynamoDB cache backend. "
                "Install with: pip install aioboto3"
            ) from e

        region = parse_qs(parts.query).get("region", [settings.aws_region])[0]
        logger.info("Creating DynamoDB cache store", table=table_name, region=region)
        return DynamoDBCacheStore(
            table_name,
            region,
            key_prefix=prefix,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=(
                settings.aws_secret_access_key.get_secret_value()
                if settings.aws_secret_access_key
                else None
            ),
            aws_session_token=(
                settings.aws_session_token.get_secret_value()
                if settings.aws_session_token
                else None
            ),
        )

    raise ConfigurationError(
        f"Unsupported cache backend '{scheme}' in CACHE_URL. "
        "Supported: memory://, redis://, rediss://, unix://, sqlite:///, dynamodb://"
    )
