from datetime import date
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from weather_proxy.config.settings import Settings
from weather_proxy.models.weather import ReportSource
from weather_proxy.services.weather_client import WeatherApiClient, redact
from weather_proxy.utils.exceptions import (
    CityNotFoundError,
    ConfigurationError,
    UpstreamMalformedError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)


def make_response(status_code=200, json_data=None, text="", headers=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.text = text
    response.headers = headers or {}
    return response


class TestWeatherApiClient:
    """Test suite for WeatherApiClient"""

    @pytest.fixture
    def mock_settings(self):
        """Create mock settings for testing"""
        return Settings(
            weather_api_key="test-api-key",
            weather_api_url="https://api.weatherapi.com/v1/",
            weather_api_timeout=8,
        )

    @pytest.fixture
    def weather_client(self, mock_settings):
        return WeatherApiClient(mock_settings)

    @pytest.fixture
    def mock_httpx_client(self):
        return AsyncMock()

    @pytest.fixture
    def current_response(self):
        """Sample current.json response"""
        return {
            "location": {"name": "London", "country": "United Kingdom"},
            "current": {
                "temp_c": 15.5,
                "condition": {"text": "Partly cloudy"},
            },
        }

    @pytest.fixture
    def forecast_response(self):
        """Sample forecast.json response with one unparsable date"""
        return {
            "location": {"name": "Perm", "country": "Russia"},
            "forecast": {
                "forecastday": [
                    {
                        "date": day,
                        "day": {
                            "mintemp_c": 3.1,
                            "maxtemp_c": 11.4,
                            "condition": {"text": "Light rain"},
                        },
                    }
                    for day in ("2024-05-01", "2024-05-02", "05/03/2024", "2024-05-04")
                ]
            },
        }

    async def test_fetch_current_success(
        self, weather_client, mock_httpx_client, current_response
    ):
        mock_httpx_client.get.return_value = make_response(json_data=current_response)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client_class.return_value = mock_httpx_client

            async with weather_client as client:
                result = await client.fetch_current("  London ")

            assert mock_client_class.call_args.kwargs["base_url"] == (
                "https://api.weatherapi.com/v1/"
            )

        assert result.city == "London"
        assert result.country == "United Kingdom"
        assert result.temp_c == 15.5
        assert result.condition == "Partly cloudy"
        assert result.source == ReportSource.ORIGIN
        assert result.fetched_at_utc.tzinfo is not None

        mock_httpx_client.get.assert_called_once_with(
            "current.json", params={"key": "test-api-key", "q": "London"}
        )
        mock_httpx_client.aclose.assert_awaited_once()

    async def test_fetch_current_fallbacks(self, weather_client, mock_httpx_client):
        """Test defaults for fields the provider leaves out"""
        mock_httpx_client.get.return_value = make_response(
            json_data={
                "location": {},
                "current": {"temp_c": -2.0, "condition": {}},
            }
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                result = await client.fetch_current("Oulu")

        assert result.city == "Oulu"
        assert result.country == ""
        assert result.condition == "n/a"

    async def test_fetch_forecast_drops_unparsable_dates(
        self, weather_client, mock_httpx_client, forecast_response
    ):
        mock_httpx_client.get.return_value = make_response(json_data=forecast_response)

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                result = await client.fetch_forecast("Perm", 3)

        assert result.days == 3
        assert [item.date for item in result.items] == [
            date(2024, 5, 1),
            date(2024, 5, 2),
            date(2024, 5, 4),
        ]
        assert result.items[0].min_temp_c == 3.1
        assert result.items[0].max_temp_c == 11.4
        assert result.items[0].condition == "Light rain"

        mock_httpx_client.get.assert_called_once_with(
            "forecast.json", params={"key": "test-api-key", "q": "Perm", "days": 3}
        )

    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_failure_is_rejected(
        self, weather_client, mock_httpx_client, status_code
    ):
        mock_httpx_client.get.return_value = make_response(
            status_code=status_code,
            json_data={"error": {"code": 2008, "message": "API key has been disabled."}},
            text='{"error": {"code": 2008}}',
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamRejectedError) as exc_info:
                    await client.fetch_current("London")

        assert exc_info.value.upstream_status == status_code

    async def test_no_matching_location(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.return_value = make_response(
            status_code=400,
            json_data={"error": {"code": 1006, "message": "No matching location found."}},
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(CityNotFoundError) as exc_info:
                    await client.fetch_current("Atlantis")

        assert "Atlantis" in str(exc_info.value)

    async def test_other_bad_request_is_unavailable(
        self, weather_client, mock_httpx_client
    ):
        mock_httpx_client.get.return_value = make_response(
            status_code=400,
            json_data={"error": {"code": 1003, "message": "Parameter q is missing."}},
            text="Parameter q is missing.",
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamUnavailableError) as exc_info:
                    await client.fetch_current("London")

        assert not isinstance(exc_info.value, CityNotFoundError)
        assert exc_info.value.upstream_status == 400

    async def test_rate_limited(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.return_value = make_response(
            status_code=429, headers={"Retry-After": "30"}
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamRateLimitedError) as exc_info:
                    await client.fetch_current("London")

        assert exc_info.value.retry_after == 30

    async def test_server_error(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.return_value = make_response(
            status_code=503, text="Service Unavailable"
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamUnavailableError) as exc_info:
                    await client.fetch_current("London")

        assert exc_info.value.upstream_status == 503
        assert exc_info.value.response_body == "Service Unavailable"

    async def test_timeout(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.side_effect = httpx.ReadTimeout("Read timed out")

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamTimeoutError) as exc_info:
                    await client.fetch_current("London")

        assert exc_info.value.timeout_seconds == 8

    async def test_transport_error(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.side_effect = httpx.ConnectError("Connection refused")

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamUnavailableError):
                    await client.fetch_current("London")

    async def test_invalid_json(self, weather_client, mock_httpx_client):
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        mock_httpx_client.get.return_value = response

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamMalformedError):
                    await client.fetch_current("London")

    @pytest.mark.parametrize(
        "payload",
        [
            {"location": {"name": "London"}},
            {"current": {"temp_c": 1.0, "condition": {"text": "Fog"}}},
            {"location": {}, "current": {"condition": {"text": "Fog"}}},
            {"location": {}, "current": {"temp_c": 1.0}},
        ],
    )
    async def test_missing_fields(self, weather_client, mock_httpx_client, payload):
        mock_httpx_client.get.return_value = make_response(json_data=payload)

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamMalformedError):
                    await client.fetch_current("London")

    async def test_forecast_missing_forecastday(self, weather_client, mock_httpx_client):
        mock_httpx_client.get.return_value = make_response(
            json_data={"location": {"name": "Perm"}, "forecast": {}}
        )

        with patch("httpx.AsyncClient", return_value=mock_httpx_client):
            async with weather_client as client:
                with pytest.raises(UpstreamMalformedError):
                    await client.fetch_forecast("Perm", 3)

    async def test_client_not_opened(self, weather_client):
        with pytest.raises(ConfigurationError):
            await weather_client.fetch_current("London")

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            WeatherApiClient(Settings(weather_api_key=""))


class TestRedact:
    """Test suite for credential redaction"""

    def test_masks_key_parameter(self):
        url = "https://api.weatherapi.com/v1/current.json?key=secret123&q=London"

        assert redact(url) == (
            "https://api.weatherapi.com/v1/current.json?key=REDACTED&q=London"
        )

    def test_leaves_other_text_alone(self):
        assert redact("Connection refused") == "Connection refused"
