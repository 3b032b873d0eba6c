from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from weather_proxy.models.weather import ForecastReport, WeatherReport


class UpstreamProvider(ABC):
    """Abstract base class for upstream weather data providers"""

    @property
    def name(self) -> str:
        return type(self).__name__

    async def open(self) -> None:
        """Acquire connections. Called once at application startup."""

    async def close(self) -> None:
        """Release connections. Called once at application shutdown."""

    @abstractmethod
    async def fetch_current(self, city: str) -> "WeatherReport":
        """
        Fetch current weather for a city

        Args:
            city: City name as entered by the client

        Returns:
            WeatherReport with source "origin" (or unset)

        Raises:
            UpstreamRejectedError: credentials refused by the provider
            UpstreamUnavailableError: transport failure, timeout or non-2xx status
            UpstreamMalformedError: response could not be parsed
        """
        pass

    @abstractmethod
    async def fetch_forecast(self, city: str, days: int) -> "ForecastReport":
        """
        Fetch a multi-day forecast for a city

        Args:
            city: City name as entered by the client
            days: Number of days requested

        Returns:
            ForecastReport whose days equals the number of items actually
            returned, which may be less than requested

        Raises:
            Same as fetch_current
        """
        pass
