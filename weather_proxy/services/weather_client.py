import logging
import re
import time
from datetime import date, datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from weather_proxy.config.settings import Settings
from weather_proxy.models.weather import (
    ForecastDay,
    ForecastReport,
    ReportSource,
    WeatherReport,
)
from weather_proxy.providers.upstream.base import UpstreamProvider
from weather_proxy.utils.exceptions import (
    CityNotFoundError,
    ConfigurationError,
    UpstreamMalformedError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

# weatherapi.com error code for "No matching location found."
NO_MATCHING_LOCATION = 1006

_SECRET_PARAMS = re.compile(
    r"([?&])(key|apikey|token|access_token)=[^&\s'\"]*", re.IGNORECASE
)


def redact(text: str) -> str:
    """Mask credentials passed as query parameters"""
    return _SECRET_PARAMS.sub(r"\1\2=REDACTED", text)


class WeatherApiClient(UpstreamProvider):
    """
    Async client for the weatherapi.com REST API

    GET current.json?key=...&q={city}
    GET forecast.json?key=...&q={city}&days={days}
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._validate_config()
        self.client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return "weatherapi"

    def _validate_config(self) -> None:
        """Validate client configuration"""
        if not self.settings.weather_api_key.get_secret_value().strip():
            raise ConfigurationError("Weather API key is required but not provided")

        if not self.settings.weather_api_url:
            raise ConfigurationError("Weather API URL is required but not provided")

    async def open(self) -> None:
        if self.client is not None:
            return

        self.client = httpx.AsyncClient(
            base_url=str(self.settings.weather_api_url),
            timeout=httpx.Timeout(self.settings.weather_api_timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> "WeatherApiClient":
        """Async context manager entry"""
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit"""
        await self.close()

    async def fetch_current(self, city: str) -> WeatherReport:
        """Fetch current weather for a given city"""
        query = city.strip()
        logger.info(f"Fetching current weather for city: {query}")

        data = await self._request("current.json", {"q": query})
        return self._parse_current(data, query)

    async def fetch_forecast(self, city: str, days: int) -> ForecastReport:
        """Fetch a forecast for a given city"""
        query = city.strip()
        logger.info(f"Fetching {days}-day forecast for city: {query}")

        data = await self._request("forecast.json", {"q": query, "days": days})
        return self._parse_forecast(data, query)

    async def _request(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Make an HTTP request to the weather API and decode the JSON body"""
        if not self.client:
            raise ConfigurationError(
                "Weather client not initialized. Call open() or use async context manager."
            )

        query = {"key": self.settings.weather_api_key.get_secret_value(), **params}
        city = params.get("q", "")
        started = time.perf_counter()

        try:
            response = await self.client.get(path, params=query)
        except httpx.TimeoutException as e:
            logger.warning(
                f"HTTP GET {path} q={city} timed out after "
                f"{(time.perf_counter() - started) * 1000:.0f}ms"
            )
            raise UpstreamTimeoutError(self.settings.weather_api_timeout) from e
        except httpx.RequestError as e:
            logger.warning(f"HTTP GET {path} q={city} failed: {redact(str(e))}")
            raise UpstreamUnavailableError(f"Request failed: {redact(str(e))}") from e

        logger.info(
            f"HTTP GET {path} q={city} -> {response.status_code} in "
            f"{(time.perf_counter() - started) * 1000:.0f}ms"
        )

        self._raise_for_status(response, city)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Failed to parse JSON response for {city}: {e}")
            raise UpstreamMalformedError(f"Invalid JSON response: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamMalformedError("Unexpected JSON document: expected an object")
        return data

    def _raise_for_status(self, response: httpx.Response, city: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        body = redact(response.text or "")[:500]

        if status in (401, 403):
            raise UpstreamRejectedError(
                f"Weather API rejected the request with status {status}. "
                "Check WEATHER_API_KEY and the provider plan.",
                status,
                body,
            )

        if status == 400 and self._error_code(response) == NO_MATCHING_LOCATION:
            raise CityNotFoundError(city)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise UpstreamRateLimitedError(
                int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        raise UpstreamUnavailableError(
            f"Weather API returned status {status}", status, body
        )

    @staticmethod
    def _error_code(response: httpx.Response) -> int | None:
        try:
            error = response.json().get("error") or {}
            return int(error.get("code"))
        except (ValueError, TypeError, AttributeError):
            return None

    def _parse_current(self, data: dict[str, Any], city: str) -> WeatherReport:
        """Map a current.json response into a WeatherReport"""
        try:
            location = data["location"]
            current = data["current"]
            condition = current["condition"]

            return WeatherReport(
                city=location.get("name") or city,
                country=location.get("country") or "",
                temp_c=current["temp_c"],
                condition=condition.get("text") or "n/a",
                fetched_at_utc=datetime.now(timezone.utc),
                source=ReportSource.ORIGIN,
            )

        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.error(f"Failed to parse current weather for {city}: {e}")
            raise UpstreamMalformedError(
                f"Failed to parse current weather: missing or invalid {e}"
            ) from e

    def _parse_forecast(self, data: dict[str, Any], city: str) -> ForecastReport:
        """Map a forecast.json response into a ForecastReport"""
        try:
            location = data["location"]
            forecast_days = data["forecast"]["forecastday"]
            if not isinstance(forecast_days, list):
                raise TypeError("forecastday is not a list")

            items = []
            for entry in forecast_days:
                day_date = self._parse_date(entry.get("date"))
                if day_date is None:
                    logger.debug(
                        f"Dropping forecast day with unparsable date "
                        f"{entry.get('date')!r} for {city}"
                    )
                    continue

                day = entry["day"]
                items.append(
                    ForecastDay(
                        date=day_date,
                        min_temp_c=day["mintemp_c"],
                        max_temp_c=day["maxtemp_c"],
                        condition=(day.get("condition") or {}).get("text") or "n/a",
                    )
                )

            return ForecastReport(
                city=location.get("name") or city,
                country=location.get("country") or "",
                days=len(items),
                items=tuple(items),
                fetched_at_utc=datetime.now(timezone.utc),
                source=ReportSource.ORIGIN,
            )

        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.error(f"Failed to parse forecast for {city}: {e}")
            raise UpstreamMalformedError(
                f"Failed to parse forecast: missing or invalid {e}"
            ) from e

    @staticmethod
    def _parse_date(value: Any) -> date | None:
        if not isinstance(value, str):
            return None
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
