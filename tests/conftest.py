import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from weather_proxy.config.settings import Settings
from weather_proxy.models.weather import ForecastDay, ForecastReport, WeatherReport
from weather_proxy.providers.cache.memory import MemoryCacheStore
from weather_proxy.providers.upstream.base import UpstreamProvider
from weather_proxy.services.weather_service import CacheAsideService


class FakeClock:
    """Manually advanced clock for TTL tests"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(UpstreamProvider):
    """Upstream provider that records calls and returns canned reports"""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.error: Exception | None = None
        self.current_calls: list[str] = []
        self.forecast_calls: list[tuple[str, int]] = []
        self.opened = False
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def fetch_current(self, city: str) -> WeatherReport:
        self.current_calls.append(city)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

        return WeatherReport(
            city=city.title(),
            country="Finland",
            temp_c=21.5,
            condition="Sunny",
            fetched_at_utc=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )

    async def fetch_forecast(self, city: str, days: int) -> ForecastReport:
        self.forecast_calls.append((city, days))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

        items = tuple(
            ForecastDay(
                date=date(2024, 5, 1) + timedelta(days=i),
                min_temp_c=10.0 + i,
                max_temp_c=18.0 + i,
                condition="Cloudy",
            )
            for i in range(days)
        )
        return ForecastReport(
            city=city.title(),
            country="Finland",
            days=len(items),
            items=items,
            fetched_at_utc=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )


@pytest.fixture
def test_settings():
    """Settings for tests, independent of the environment"""
    return Settings(
        weather_api_key="test-api-key",
        cache_url="memory://",
        cache_key_prefix="weather:",
        current_ttl_minutes=15,
        forecast_ttl_minutes=60,
        max_forecast_days=3,
        environment="development",
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_store(fake_clock):
    return MemoryCacheStore(key_prefix="weather:", clock=fake_clock)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
async def weather_service(test_settings, memory_store, fake_provider):
    """Initialized service over an in-memory store and a fake provider"""
    service = CacheAsideService(test_settings, memory_store, fake_provider)
    await service.initialize()
    return service
