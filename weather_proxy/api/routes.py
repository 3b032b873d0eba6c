from datetime import datetime, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from weather_proxy.models.weather import (
    CacheInvalidationResponse,
    ForecastReport,
    WeatherReport,
)
from weather_proxy.services.weather_service import CacheAsideService

logger = structlog.get_logger(__name__)
router = APIRouter()
dev_router = APIRouter(prefix="/dev")

CityQuery = Annotated[
    str,
    Query(
        description="City name",
        min_length=1,
        examples=["London"],
    ),
]
DaysQuery = Annotated[int, Query(description="Number of forecast days", examples=[3])]


def get_weather_service(request: Request) -> CacheAsideService:
    """
    Dependency injection for the weather service.

    The service is created during application startup and kept in app state.
    """
    if not hasattr(request.app.state, "weather_service"):
        raise HTTPException(status_code=503, detail="Weather service not available")

    return request.app.state.weather_service


@router.get(
    "/weather/current",
    response_model=WeatherReport,
    summary="Get current weather",
    description="""
    Current weather for a city.

    Served from cache while the entry is fresh (`source: "cache"`),
    otherwise fetched from the weather provider (`source: "origin"`)
    and cached for CURRENT_TTL_MINUTES.
    """,
    responses={
        400: {"description": "Invalid city"},
        404: {"description": "City not found"},
        502: {"description": "Weather provider rejected the request or failed"},
        503: {"description": "Weather provider rate limit exceeded"},
        504: {"description": "Weather provider timed out"},
    },
    tags=["Weather"],
)
async def get_current_weather(
    city: CityQuery,
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> WeatherReport:
    logger.info("Current weather requested", city=city)

    report = await weather_service.get_current(city)

    logger.info("Current weather served", city=city, source=report.source)
    return report


@router.get(
    "/weather/forecast",
    response_model=ForecastReport,
    summary="Get weather forecast",
    description="""
    Multi-day forecast for a city.

    `days` must be between 1 and MAX_FORECAST_DAYS. The response may hold
    fewer days than requested when the provider returns fewer usable entries;
    `days` in the response always equals the number of `items`.
    """,
    responses={
        400: {"description": "Invalid city or days"},
        404: {"description": "City not found"},
        502: {"description": "Weather provider rejected the request or failed"},
        503: {"description": "Weather provider rate limit exceeded"},
        504: {"description": "Weather provider timed out"},
    },
    tags=["Weather"],
)
async def get_forecast(
    city: CityQuery,
    days: DaysQuery,
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> ForecastReport:
    logger.info("Forecast requested", city=city, days=days)

    report = await weather_service.get_forecast(city, days)

    logger.info(
        "Forecast served", city=city, days=report.days, source=report.source
    )
    return report


@router.get(
    "/health",
    response_model=dict[str, Any],
    summary="Service health check",
    description="""
    Health of the service components:
    - Cache backend reachability
    - Weather provider client initialization

    A cache outage reports `degraded` with status 200 because requests are
    still served from the provider. `unhealthy` returns 503.
    """,
    responses={
        200: {
            "description": "Health check completed",
            "content": {
                "application/json": {
                    "example": {
                        "service": "healthy",
                        "components": {
                            "cache": {"status": "healthy", "backend": "redis"},
                            "upstream": {"status": "healthy", "provider": "weatherapi"},
                        },
                        "timestamp": "2024-05-01T12:00:00+00:00",
                    }
                }
            },
        }
    },
    tags=["Health"],
)
async def health_check(
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> dict[str, Any]:
    logger.info("Health check requested")

    try:
        health_status = await weather_service.health_check()
        status_code = 503 if health_status["service"] == "unhealthy" else 200

        logger.info(
            "Health check completed",
            status=health_status["service"],
            status_code=status_code,
        )

        return JSONResponse(status_code=status_code, content=health_status)

    except Exception as e:
        logger.error("Health check failed", error=str(e), error_type=type(e).__name__)

        return JSONResponse(
            status_code=503,
            content={
                "service": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


@router.get(
    "/health/ready",
    response_model=dict[str, Any],
    summary="Readiness probe",
    tags=["Health"],
)
async def readiness_check(
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> dict[str, Any]:
    """Quick readiness check for container orchestration"""
    if not weather_service._initialized:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "message": "Service not initialized"},
        )

    return {"status": "ready"}


@router.get(
    "/cache/stats",
    response_model=dict[str, Any],
    summary="Cache statistics",
    description="""
    Cache configuration and in-process counters:
    - TTLs and backend in use
    - Hits, misses, upstream fetches and coalesced requests since startup
    """,
    tags=["Cache Management"],
)
async def get_cache_stats(
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> dict[str, Any]:
    logger.info("Cache stats requested")
    return await weather_service.get_cache_stats()


@dev_router.delete(
    "/cache/current",
    response_model=CacheInvalidationResponse,
    summary="Invalidate cached current weather",
    tags=["Dev"],
)
async def invalidate_current(
    city: CityQuery,
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> CacheInvalidationResponse:
    removed, key = await weather_service.invalidate_current(city)
    return CacheInvalidationResponse(removed=removed, key=key)


@dev_router.delete(
    "/cache/forecast",
    response_model=CacheInvalidationResponse,
    summary="Invalidate a cached forecast",
    tags=["Dev"],
)
async def invalidate_forecast(
    city: CityQuery,
    days: DaysQuery,
    weather_service: CacheAsideService = Depends(get_weather_service),
) -> CacheInvalidationResponse:
    removed, key = await weather_service.invalidate_forecast(city, days)
    return CacheInvalidationResponse(removed=removed, key=key)
