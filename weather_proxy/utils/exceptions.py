from typing import Any


class WeatherProxyError(Exception):
    """Base exception for weather proxy errors"""

    status_code = 500
    error_code = "WEATHER_PROXY_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidArgumentError(WeatherProxyError):
    """Raised when a client supplies an invalid city or day count"""

    status_code = 400
    error_code = "INVALID_ARGUMENT"

    def __init__(self, argument: str, message: str):
        super().__init__(message, {"argument": argument})
        self.argument = argument


class CityNotFoundError(InvalidArgumentError):
    """Raised when the upstream provider has no matching location"""

    status_code = 404
    error_code = "CITY_NOT_FOUND"

    def __init__(self, city: str):
        super().__init__("city", f"City '{city}' not found")
        self.city = city


class UpstreamError(WeatherProxyError):
    """Base class for failures of the upstream weather provider"""

    status_code = 502
    error_code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        response_body: str | None = None,
    ):
        details = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(message, details)
        self.upstream_status = upstream_status
        self.response_body = response_body


class UpstreamRejectedError(UpstreamError):
    """
    Raised when the provider refuses our credentials (HTTP 401/403).

    Retrying will not help: this is an operator configuration problem.
    """

    error_code = "UPSTREAM_REJECTED"


class UpstreamUnavailableError(UpstreamError):
    """Raised when the provider call failed or returned a non-2xx status"""

    error_code = "UPSTREAM_UNAVAILABLE"


class UpstreamTimeoutError(UpstreamUnavailableError):
    """Raised when the provider did not answer within the configured timeout"""

    status_code = 504
    error_code = "UPSTREAM_TIMEOUT"

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Upstream request timed out after {timeout_seconds} seconds")
        self.timeout_seconds = timeout_seconds
        self.details["timeout_seconds"] = timeout_seconds


class UpstreamRateLimitedError(UpstreamUnavailableError):
    """Raised when the provider rate limit is exceeded"""

    status_code = 503
    error_code = "UPSTREAM_RATE_LIMITED"

    def __init__(self, retry_after: int | None = None):
        message = "Upstream rate limit exceeded"
        if retry_after:
            message += f". Retry after {retry_after} seconds"
        super().__init__(message, upstream_status=429)
        self.retry_after = retry_after
        if retry_after:
            self.details["retry_after"] = retry_after


class UpstreamMalformedError(UpstreamError):
    """Raised when a provider response cannot be parsed into the domain model"""

    error_code = "UPSTREAM_MALFORMED"


class CacheBackendError(WeatherProxyError):
    """
    Raised by cache stores when the backend is unreachable or misbehaves.

    Never surfaced to API callers: the cache layer logs it and degrades
    to fetching from the provider.
    """

    error_code = "CACHE_BACKEND_ERROR"

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, {"operation": operation} if operation else None)
        self.operation = operation


class ConfigurationError(WeatherProxyError):
    """Raised when configuration is invalid"""

    error_code = "CONFIGURATION_ERROR"
