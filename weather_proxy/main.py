import logging
import sys
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from weather_proxy.api.routes import dev_router, router
from weather_proxy.config.settings import Settings, settings
from weather_proxy.config.utils import get_config_summary, validate_configuration
from weather_proxy.services.weather_service import create_weather_service
from weather_proxy.utils.exceptions import (
    ConfigurationError,
    UpstreamRateLimitedError,
    WeatherProxyError,
)

CORRELATION_HEADER = "X-Correlation-ID"


def setup_logging(settings_obj: Settings) -> None:
    """Configure structured logging for the application."""

    log_level = getattr(logging, settings_obj.log_level.upper())

    if settings_obj.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manage application lifespan - startup and shutdown events.

    A weather service already placed in app.state (as tests do) is
    initialized but left for its owner to clean up.
    """
    logger = structlog.get_logger(__name__)
    app_settings: Settings = app.state.settings
    owns_service = not hasattr(app.state, "weather_service")

    logger.info("Starting Weather Proxy service", version=app_settings.app_version)

    if owns_service:
        validation = validate_configuration(app_settings)
        for warning in validation["warnings"]:
            logger.warning("Configuration warning", warning=warning)
        if not validation["valid"]:
            for error in validation["errors"]:
                logger.error("Configuration error", error=error)
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(validation["errors"])
            )

        logger.info("Configuration loaded", **get_config_summary(app_settings))

        try:
            app.state.weather_service = await create_weather_service(app_settings)
        except Exception as e:
            logger.error(
                "Failed to initialize weather service during startup", error=str(e)
            )
            raise
    else:
        await app.state.weather_service.initialize()

    health_status = await app.state.weather_service.health_check()
    if health_status["service"] != "healthy":
        logger.warning("Service startup health check failed", status=health_status)
    else:
        logger.info("Service startup health check passed")

    yield

    logger.info("Shutting down Weather Proxy service")

    if owns_service:
        try:
            await app.state.weather_service.cleanup()
        except Exception as e:
            logger.error("Error during service cleanup", error=str(e))


def _error_body(error: str, message: str, details: object) -> dict[str, object]:
    return {"error": error, "message": message, "details": details}


def create_app(settings_obj: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings_obj: Settings to use instead of the environment-loaded ones

    Returns:
        Configured FastAPI application instance
    """
    app_settings = settings_obj or settings

    setup_logging(app_settings)

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="Weather proxy with cache-aside caching and request coalescing",
        docs_url="/docs" if app_settings.is_development else None,
        redoc_url="/redoc" if app_settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=app_settings.allowed_hosts)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next) -> Response:
        """Log requests and add correlation and processing time headers."""
        logger = structlog.get_logger(__name__)

        start_time = time.time()
        request_id = request.headers.get(CORRELATION_HEADER) or f"req_{uuid.uuid4().hex}"

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        logger.info("Request started")

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            response.headers["X-Process-Time"] = str(process_time)
            response.headers["X-Request-ID"] = request_id
            response.headers[CORRELATION_HEADER] = request_id

            logger.info(
                "Request completed",
                status_code=response.status_code,
                process_time=process_time,
            )

            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "Request failed",
                error=str(e),
                error_type=type(e).__name__,
                process_time=process_time,
            )
            raise

    @app.exception_handler(WeatherProxyError)
    async def weather_proxy_error_handler(
        _request: Request, exc: WeatherProxyError
    ) -> JSONResponse:
        """Map domain errors to their status code and a structured body."""
        logger = structlog.get_logger(__name__)

        # the service already raised the operator alert for rejected credentials
        if exc.status_code >= 500:
            logger.error(
                "Weather proxy error", error=exc.message, error_type=type(exc).__name__
            )
        else:
            logger.warning(
                "Request rejected", error=exc.message, error_type=type(exc).__name__
            )

        headers = None
        if isinstance(exc, UpstreamRateLimitedError) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, exc.details or None),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report invalid query parameters as 400 with the structured body."""
        errors = [
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": error.get("msg", ""),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]

        return JSONResponse(
            status_code=400,
            content=_error_body(
                "INVALID_ARGUMENT", "Request validation failed", {"errors": errors}
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors gracefully."""
        logger = structlog.get_logger(__name__)
        logger.error(
            "Unhandled exception", error=str(exc), error_type=type(exc).__name__
        )

        return JSONResponse(
            status_code=500,
            content=_error_body(
                "INTERNAL_SERVER_ERROR",
                "An internal server error occurred",
                str(exc) if app_settings.is_development else None,
            ),
        )

    app.include_router(router, prefix=app_settings.api_prefix)
    if app_settings.dev_endpoints_enabled:
        app.include_router(dev_router, prefix=app_settings.api_prefix)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint providing basic service information."""
        return {
            "service": app_settings.app_name,
            "version": app_settings.app_version,
            "status": "running",
            "docs": "/docs" if app_settings.is_development else "disabled",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weather_proxy.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
