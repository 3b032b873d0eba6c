from typing import Literal

from pydantic import Field, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Weather Proxy API"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "production"] = "development"

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    api_prefix: str = "/api/v1"

    allowed_hosts: list[str] = Field(default_factory=lambda: ["*"])
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    weather_api_key: SecretStr = Field(
        default=SecretStr(""), description="weatherapi.com API key"
    )
    weather_api_url: HttpUrl = Field(
        default="https://api.weatherapi.com/v1/",
        description="Weather API base URL",
    )
    weather_api_timeout: float = Field(
        default=8.0, gt=0, description="Weather API request timeout in seconds"
    )

    current_ttl_minutes: int = Field(
        default=15, ge=1, description="TTL for current weather entries in minutes"
    )
    forecast_ttl_minutes: int = Field(
        default=60, ge=1, description="TTL for forecast entries in minutes"
    )
    max_forecast_days: int = Field(
        default=3,
        ge=1,
        description="Largest forecast length the upstream plan allows",
    )
    city_max_length: int = Field(default=64, ge=1)

    cache_url: str = Field(
        default="memory://",
        description=(
            "Cache backend connection string: memory://, redis://host:port/db, "
            "sqlite:///path/to/cache.db or dynamodb://table-name"
        ),
    )
    cache_key_prefix: str = Field(
        default="weather:", description="Namespace prepended to every cache key"
    )
    cache_operation_timeout: float = Field(
        default=0.5, gt=0, description="Timeout for a single cache operation in seconds"
    )

    enable_dev_endpoints: bool | None = Field(
        default=None,
        description="Expose /dev cache invalidation routes (defaults to development only)",
    )

    aws_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: SecretStr | None = None
    aws_session_token: SecretStr | None = None

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    health_check_timeout: float = Field(
        default=2.0, gt=0, description="Health check timeout in seconds"
    )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def dev_endpoints_enabled(self) -> bool:
        if self.enable_dev_endpoints is None:
            return self.is_development
        return self.enable_dev_endpoints


settings = Settings()
