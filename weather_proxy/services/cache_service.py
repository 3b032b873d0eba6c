import asyncio
from datetime import timedelta
from typing import TypeVar

import structlog
from pydantic import ValidationError

from weather_proxy.models.weather import ForecastReport, ReportSource, WeatherReport
from weather_proxy.providers.cache.base import CacheStore
from weather_proxy.utils.exceptions import CacheBackendError

R = TypeVar("R", WeatherReport, ForecastReport)

logger = structlog.get_logger(__name__)


class ReportCache:
    """
    Typed cache of weather reports on top of a CacheStore.

    Every store failure or timeout is logged and absorbed: a failed read is
    a miss, a failed write or delete is a no-op. Callers never see
    CacheBackendError.
    """

    def __init__(self, store: CacheStore, operation_timeout: float):
        self.store = store
        self.operation_timeout = operation_timeout

    def _log_failure(self, operation: str, key: str, error: BaseException) -> None:
        logger.warning(
            "cache_operation_failed",
            operation=operation,
            key=key,
            error=str(error) or "timed out",
            error_type=type(error).__name__,
        )

    async def read(self, key: str, model_cls: type[R]) -> R | None:
        """Return the cached report tagged with source 'cache', or None on a miss"""
        try:
            payload = await asyncio.wait_for(
                self.store.get(key), timeout=self.operation_timeout
            )
        except (CacheBackendError, asyncio.TimeoutError) as e:
            self._log_failure("get", key, e)
            return None
        except Exception as e:
            logger.error(
                "cache_unexpected_error",
                operation="get",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if payload is None:
            return None

        try:
            report = model_cls.model_validate_json(payload)
        except (ValidationError, ValueError) as e:
            logger.warning(
                "cache_payload_malformed",
                key=key,
                model=model_cls.__name__,
                error=str(e),
            )
            return None

        return report.model_copy(update={"source": ReportSource.CACHE})

    async def write(
        self, key: str, report: WeatherReport | ForecastReport, ttl: timedelta
    ) -> None:
        """Store a report; failures are logged and ignored"""
        try:
            await asyncio.wait_for(
                self.store.set(key, report.model_dump_json(by_alias=True), ttl),
                timeout=self.operation_timeout,
            )
        except (CacheBackendError, asyncio.TimeoutError) as e:
            self._log_failure("set", key, e)
        except Exception as e:
            logger.error(
                "cache_unexpected_error",
                operation="set",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def delete(self, key: str) -> bool:
        """Remove a report; returns False if nothing was removed or the store failed"""
        try:
            return await asyncio.wait_for(
                self.store.delete(key), timeout=self.operation_timeout
            )
        except (CacheBackendError, asyncio.TimeoutError) as e:
            self._log_failure("delete", key, e)
            return False
        except Exception as e:
            logger.error(
                "cache_unexpected_error",
                operation="delete",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def is_healthy(self, timeout: float | None = None) -> bool:
        """Check if the cache store is healthy"""
        try:
            return await asyncio.wait_for(
                self.store.health_check(), timeout=timeout or self.operation_timeout
            )
        except Exception:
            return False
