"""
Cache-aside weather service.

Reads go to the cache first. On a miss the upstream provider is called once
per key (concurrent misses join the same fetch), and the result is written
back with a per-kind TTL. Cache failures degrade to fetching from the
provider; provider failures propagate unchanged.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import structlog

from weather_proxy.config.settings import Settings
from weather_proxy.models.weather import ForecastReport, ReportSource, WeatherReport
from weather_proxy.providers.cache.base import CacheStore
from weather_proxy.providers.cache.factory import create_cache_store
from weather_proxy.providers.upstream.base import UpstreamProvider
from weather_proxy.services.cache_keys import current_key, forecast_key, slugify
from weather_proxy.services.cache_service import ReportCache
from weather_proxy.services.single_flight import SingleFlight
from weather_proxy.services.weather_client import WeatherApiClient
from weather_proxy.utils.exceptions import (
    CacheBackendError,
    InvalidArgumentError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
)

R = TypeVar("R", WeatherReport, ForecastReport)

logger = structlog.get_logger(__name__)


class CacheAsideService:
    """
    Weather lookups backed by a cache store and an upstream provider.

    The store and the provider are injected so tests can pass in-memory
    and fake implementations.
    """

    def __init__(
        self,
        settings: Settings,
        cache_store: CacheStore,
        provider: UpstreamProvider,
        single_flight: SingleFlight | None = None,
    ):
        self.settings = settings
        self.cache_store = cache_store
        self.provider = provider
        self._cache = ReportCache(cache_store, settings.cache_operation_timeout)
        self._single_flight = single_flight or SingleFlight()
        self._stats = {"hits": 0, "misses": 0, "upstream_fetches": 0, "coalesced": 0}
        self._initialized = False

    @property
    def current_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.current_ttl_minutes)

    @property
    def forecast_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.forecast_ttl_minutes)

    async def initialize(self) -> None:
        """Connect the cache store and open the provider"""
        if self._initialized:
            return

        try:
            await self.cache_store.connect()
        except CacheBackendError as e:
            # requests still work without a cache, only slower
            logger.warning(
                "cache_connect_failed", backend=self.cache_store.name, error=str(e)
            )

        await self.provider.open()
        self._initialized = True
        logger.info(
            "weather_service_initialized",
            backend=self.cache_store.name,
            provider=self.provider.name,
        )

    async def cleanup(self) -> None:
        """Close the provider and the cache store"""
        try:
            await self.provider.close()
        finally:
            await self.cache_store.close()
            self._initialized = False
            logger.info("weather_service_cleanup_completed")

    def _validate_city(self, city: Any) -> str:
        if city is None or not isinstance(city, str) or not city.strip():
            raise InvalidArgumentError("city", "City name cannot be empty")

        city = city.strip()
        if len(city) > self.settings.city_max_length:
            raise InvalidArgumentError(
                "city",
                f"City name must be at most {self.settings.city_max_length} characters",
            )
        return city

    def _validate_days(self, days: Any) -> int:
        max_days = self.settings.max_forecast_days
        if isinstance(days, bool) or not isinstance(days, int):
            raise InvalidArgumentError("days", "Days must be an integer")

        if not 1 <= days <= max_days:
            raise InvalidArgumentError(
                "days", f"Days must be between 1 and {max_days}, got {days}"
            )
        return days

    async def get_current(self, city: str) -> WeatherReport:
        """Get current weather for a city, from cache when fresh"""
        city = self._validate_city(city)
        return await self._get_or_fetch(
            city,
            current_key(city),
            WeatherReport,
            lambda: self.provider.fetch_current(city),
            self.current_ttl,
        )

    async def get_forecast(self, city: str, days: int) -> ForecastReport:
        """
        Get a forecast for a city, from cache when fresh.

        The cache key uses the requested number of days. The cached report
        may hold fewer days when the provider returned fewer usable entries.
        """
        city = self._validate_city(city)
        days = self._validate_days(days)
        return await self._get_or_fetch(
            city,
            forecast_key(city, days),
            ForecastReport,
            lambda: self.provider.fetch_forecast(city, days),
            self.forecast_ttl,
        )

    async def _get_or_fetch(
        self,
        city: str,
        key: str,
        model_cls: type[R],
        fetch: Callable[[], Awaitable[R]],
        ttl: timedelta,
    ) -> R:
        if not slugify(city):
            # every such city maps to the same key, so caching would mix them up;
            # concurrent requests for the same city still share one fetch
            logger.warning("cache_bypassed_empty_slug", city=city, key=key)
            report, shared = await self._single_flight.do(
                f"{key}#{city.casefold()}", lambda: self._fetch(key, fetch)
            )
            if shared:
                self._stats["coalesced"] += 1
            return report

        cached = await self._cache.read(key, model_cls)
        if cached is not None:
            self._stats["hits"] += 1
            logger.debug("cache_hit", key=key)
            return cached

        self._stats["misses"] += 1
        logger.debug("cache_miss", key=key)

        report, shared = await self._single_flight.do(
            key, lambda: self._fetch_and_store(key, fetch, ttl)
        )
        if shared:
            self._stats["coalesced"] += 1
            logger.debug("fetch_coalesced", key=key)
        return report

    async def _fetch_and_store(
        self, key: str, fetch: Callable[[], Awaitable[R]], ttl: timedelta
    ) -> R:
        report = await self._fetch(key, fetch)
        await self._cache.write(key, report, ttl)
        return report

    async def _fetch(self, key: str, fetch: Callable[[], Awaitable[R]]) -> R:
        """Call the provider under the upstream timeout and tag the result as origin"""
        self._stats["upstream_fetches"] += 1
        timeout = self.settings.weather_api_timeout

        try:
            report = await asyncio.wait_for(fetch(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("upstream_timeout", key=key, timeout_seconds=timeout)
            raise UpstreamTimeoutError(timeout) from e
        except UpstreamRejectedError as e:
            logger.error(
                "upstream_rejected",
                alert=True,
                key=key,
                provider=self.provider.name,
                upstream_status=e.upstream_status,
            )
            raise

        if report.source is None:
            report = report.model_copy(update={"source": ReportSource.ORIGIN})

        logger.info("upstream_fetched", key=key, provider=self.provider.name)
        return report

    async def invalidate_current(self, city: str) -> tuple[bool, str]:
        """Remove the cached current weather for a city"""
        city = self._validate_city(city)
        return await self._invalidate(city, current_key(city))

    async def invalidate_forecast(self, city: str, days: int) -> tuple[bool, str]:
        """Remove the cached forecast for a city and day count"""
        city = self._validate_city(city)
        days = self._validate_days(days)
        return await self._invalidate(city, forecast_key(city, days))

    async def _invalidate(self, city: str, key: str) -> tuple[bool, str]:
        if not slugify(city):
            return False, key

        removed = await self._cache.delete(key)
        logger.info("cache_invalidated", key=key, removed=removed)
        return removed, key

    async def health_check(self) -> dict[str, Any]:
        """Report the health of the cache store and the service itself"""
        health_status = {
            "service": "healthy",
            "components": {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            cache_healthy = await self._cache.is_healthy(
                timeout=self.settings.health_check_timeout
            )
            health_status["components"]["cache"] = {
                "status": "healthy" if cache_healthy else "unhealthy",
                "backend": self.cache_store.name,
            }
            health_status["components"]["upstream"] = {
                "status": "healthy" if self._initialized else "unhealthy",
                "provider": self.provider.name,
            }

            if not self._initialized:
                health_status["service"] = "unhealthy"
            elif not cache_healthy:
                # a cache outage only costs latency
                health_status["service"] = "degraded"

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            health_status["service"] = "unhealthy"
            health_status["error"] = str(e)

        return health_status

    async def get_cache_stats(self) -> dict[str, Any]:
        """Get cache configuration and in-process counters"""
        return {
            "backend": self.cache_store.name,
            "key_prefix": self.cache_store.key_prefix,
            "current_ttl_minutes": self.settings.current_ttl_minutes,
            "forecast_ttl_minutes": self.settings.forecast_ttl_minutes,
            "max_forecast_days": self.settings.max_forecast_days,
            "in_flight": len(self._single_flight),
            "service_initialized": self._initialized,
            **self._stats,
        }


async def create_weather_service(settings: Settings) -> CacheAsideService:
    """
    Build the service from settings and initialize it.

    Usage:
        service = await create_weather_service(settings)
        try:
            report = await service.get_current("London")
        finally:
            await service.cleanup()
    """
    service = CacheAsideService(
        settings,
        cache_store=create_cache_store(settings),
        provider=WeatherApiClient(settings),
    )
    await service.initialize()
    return service
