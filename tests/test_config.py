import pytest
from pydantic import ValidationError

from weather_proxy.config.settings import Settings
from weather_proxy.config.utils import get_config_summary, validate_configuration


class TestSettings:
    """Test suite for Settings"""

    def test_defaults(self):
        settings = Settings(weather_api_key="test-api-key")

        assert settings.current_ttl_minutes == 15
        assert settings.forecast_ttl_minutes == 60
        assert settings.max_forecast_days == 3
        assert settings.cache_url == "memory://"
        assert settings.cache_key_prefix == "weather:"
        assert settings.api_prefix == "/api/v1"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CURRENT_TTL_MINUTES", "5")
        monkeypatch.setenv("CACHE_URL", "redis://cache:6379/0")

        settings = Settings()

        assert settings.current_ttl_minutes == 5
        assert settings.cache_url == "redis://cache:6379/0"

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(current_ttl_minutes=0)

    def test_api_key_is_secret(self):
        settings = Settings(weather_api_key="test-api-key")

        assert "test-api-key" not in repr(settings)
        assert settings.weather_api_key.get_secret_value() == "test-api-key"

    @pytest.mark.parametrize(
        "environment, override, expected",
        [
            ("development", None, True),
            ("production", None, False),
            ("production", True, True),
            ("development", False, False),
        ],
    )
    def test_dev_endpoints_enabled(self, environment, override, expected):
        settings = Settings(environment=environment, enable_dev_endpoints=override)

        assert settings.dev_endpoints_enabled is expected


class TestValidateConfiguration:
    """Test suite for startup configuration checks"""

    def test_valid(self):
        result = validate_configuration(Settings(weather_api_key="test-api-key"))

        assert result["valid"] is True
        assert result["errors"] == []

    def test_missing_api_key(self):
        result = validate_configuration(Settings(weather_api_key=""))

        assert result["valid"] is False
        assert any("WEATHER_API_KEY" in error for error in result["errors"])

    def test_unsupported_cache_scheme(self):
        result = validate_configuration(
            Settings(weather_api_key="test-api-key", cache_url="memcached://localhost")
        )

        assert result["valid"] is False

    def test_cache_timeout_must_be_below_api_timeout(self):
        result = validate_configuration(
            Settings(
                weather_api_key="test-api-key",
                weather_api_timeout=1.0,
                cache_operation_timeout=2.0,
            )
        )

        assert result["valid"] is False

    def test_short_forecast_ttl_warns(self):
        result = validate_configuration(
            Settings(
                weather_api_key="test-api-key",
                cache_url="redis://localhost:6379/0",
                current_ttl_minutes=30,
                forecast_ttl_minutes=10,
            )
        )

        assert result["valid"] is True
        assert any("FORECAST_TTL_MINUTES" in w for w in result["warnings"])


class TestConfigSummary:
    """Test suite for the loggable configuration summary"""

    def test_contains_no_secrets(self):
        summary = get_config_summary(Settings(weather_api_key="test-api-key"))

        assert "test-api-key" not in str(summary)
        assert summary["weather_api_configured"] is True
        assert summary["cache_backend"] == "memory"
