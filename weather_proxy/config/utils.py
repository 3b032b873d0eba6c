from urllib.parse import urlsplit

from .settings import Settings, settings as default_settings

SUPPORTED_CACHE_SCHEMES = ("memory", "redis", "rediss", "unix", "sqlite", "dynamodb")


def validate_configuration(
    settings: Settings | None = None,
) -> dict[str, list[str] | bool]:
    """Validate configuration and return validation results."""
    settings = settings or default_settings
    errors = []
    warnings = []

    if not settings.weather_api_key.get_secret_value().strip():
        errors.append("WEATHER_API_KEY must be set to a valid weatherapi.com API key")

    scheme = urlsplit(settings.cache_url).scheme
    if scheme not in SUPPORTED_CACHE_SCHEMES:
        errors.append(
            f"CACHE_URL scheme '{scheme}' is not supported. "
            f"Use one of: {', '.join(SUPPORTED_CACHE_SCHEMES)}"
        )
    elif scheme == "memory":
        warnings.append(
            "Using the in-process memory cache; entries are not shared between workers"
        )

    if settings.cache_operation_timeout >= settings.weather_api_timeout:
        errors.append(
            "CACHE_OPERATION_TIMEOUT must be smaller than WEATHER_API_TIMEOUT"
        )

    if settings.forecast_ttl_minutes < settings.current_ttl_minutes:
        warnings.append(
            "FORECAST_TTL_MINUTES is shorter than CURRENT_TTL_MINUTES; "
            "forecasts will be refetched more often than current weather"
        )

    if settings.is_production and settings.enable_dev_endpoints:
        warnings.append("Dev cache endpoints are enabled in production")

    if not (1 <= settings.port <= 65535):
        errors.append("PORT must be between 1 and 65535")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }


def get_config_summary(settings: Settings | None = None) -> dict[str, str | int | bool]:
    """Get a summary of current configuration for logging/debugging."""
    settings = settings or default_settings
    return {
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "cache_backend": urlsplit(settings.cache_url).scheme,
        "cache_key_prefix": settings.cache_key_prefix,
        "current_ttl_minutes": settings.current_ttl_minutes,
        "forecast_ttl_minutes": settings.forecast_ttl_minutes,
        "max_forecast_days": settings.max_forecast_days,
        "debug": settings.debug,
        "log_level": settings.log_level,
        "api_endpoint": f"{settings.host}:{settings.port}",
        "weather_api_configured": bool(
            settings.weather_api_key.get_secret_value().strip()
        ),
    }
