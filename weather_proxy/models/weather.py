import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ReportSource(str, Enum):
    """Where the data returned in a response came from"""

    ORIGIN = "origin"
    CACHE = "cache"


class _Report(BaseModel):
    """Immutable value serialized with camelCase field names"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class WeatherReport(_Report):
    """Current weather for a city"""

    city: str = Field(..., description="City name as reported by the provider")
    country: str = Field(default="", description="Country name")
    temp_c: float = Field(..., description="Temperature in Celsius")
    condition: str = Field(..., description="Short condition text, e.g. 'Sunny'")
    fetched_at_utc: dt.datetime = Field(
        ..., description="When the data was fetched from the provider (UTC)"
    )
    source: ReportSource | None = Field(
        default=None, description="'origin' for fresh data, 'cache' for cached data"
    )


class ForecastDay(_Report):
    """Forecast for one calendar day (UTC)"""

    date: dt.date = Field(..., description="Forecast date")
    min_temp_c: float = Field(..., description="Minimum temperature in Celsius")
    max_temp_c: float = Field(..., description="Maximum temperature in Celsius")
    condition: str = Field(..., description="Short condition text")


class ForecastReport(_Report):
    """Multi-day forecast for a city"""

    city: str = Field(..., description="City name as reported by the provider")
    country: str = Field(default="", description="Country name")
    days: int = Field(..., ge=0, description="Number of days included in items")
    items: tuple[ForecastDay, ...] = Field(
        default=(), description="Daily forecasts in provider order"
    )
    fetched_at_utc: dt.datetime = Field(
        ..., description="When the data was fetched from the provider (UTC)"
    )
    source: ReportSource | None = Field(
        default=None, description="'origin' for fresh data, 'cache' for cached data"
    )

    @model_validator(mode="after")
    def _days_match_items(self) -> "ForecastReport":
        if self.days != len(self.items):
            raise ValueError(
                f"days ({self.days}) must equal the number of items ({len(self.items)})"
            )
        return self


class CacheInvalidationResponse(BaseModel):
    """Result of an administrative cache invalidation"""

    removed: bool = Field(..., description="Whether an entry was removed")
    key: str = Field(..., description="Cache key that was targeted")
