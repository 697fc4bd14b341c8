from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import status


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-10-19T12:00:00.000Z."""
    return (
        datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )


def success_envelope(data: Any = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"success": True}
    if data is not None:
        payload["data"] = data
    payload["timestamp"] = utc_timestamp()
    return payload


def error_envelope(
    message: str,
    *,
    error_code: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Standard failure body shared by every endpoint and middleware:
    {
        "success": false,
        "error": "Human-readable message",
        "errorCode": "validation_error",
        "timestamp": "..."
    }
    """
    payload: Dict[str, Any] = {
        "success": False,
        "error": message,
        "errorCode": error_code,
    }
    if extra:
        payload.update(extra)
    payload["timestamp"] = utc_timestamp()
    return payload


class GatewayError(Exception):
    """Base class for errors that map onto a structured HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, Any]:
        return error_envelope(self.message, error_code=self.error_code)


class RequestValidationFailed(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"
    default_message = "Invalid request"


class RateLimited(GatewayError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "rate_limited"
    default_message = "Too many requests"


class RequestTimedOut(GatewayError):
    status_code = status.HTTP_408_REQUEST_TIMEOUT
    error_code = "request_timeout"
    default_message = "Request timeout - the operation took too long to complete"


class RecordNotFound(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_message = "Conversion not found"


class PersistenceError(GatewayError):
    error_code = "persistence_error"
    default_message = "Storage operation failed"


class ServiceUnavailable(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "service_unavailable"
    default_message = "Service unavailable"


class ConversionError(GatewayError):
    """
    Failure raised by the conversion orchestrator.

    `elapsed_ms` is attached for observability even though the caller
    never sees it.
    """

    error_code = "provider_error"
    default_message = "Conversion failed"

    def __init__(self, message: Optional[str] = None, *, elapsed_ms: int = 0) -> None:
        super().__init__(message)
        self.elapsed_ms = elapsed_ms


class MissingCredential(ConversionError):
    error_code = "missing_credential"
    default_message = "Translation provider credential (OPENAI_API_KEY) is not configured"


class EmptyInput(ConversionError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "empty_input"
    default_message = "Source text must not be empty"


class ProviderQuotaExceeded(ConversionError):
    error_code = "provider_quota_exceeded"
    default_message = "Translation provider quota exhausted; check your plan"


class ProviderAuthInvalid(ConversionError):
    error_code = "provider_auth_invalid"
    default_message = "Translation provider rejected the configured credential"


class ProviderRateLimited(ConversionError):
    error_code = "provider_rate_limited"
    default_message = "Translation provider rate limit exceeded; try again in a few minutes"


class ProviderGeneric(ConversionError):
    error_code = "provider_error"
    default_message = "Translation provider error"


__all__ = [
    "ConversionError",
    "EmptyInput",
    "GatewayError",
    "MissingCredential",
    "PersistenceError",
    "ProviderAuthInvalid",
    "ProviderGeneric",
    "ProviderQuotaExceeded",
    "ProviderRateLimited",
    "RateLimited",
    "RecordNotFound",
    "RequestTimedOut",
    "RequestValidationFailed",
    "ServiceUnavailable",
    "error_envelope",
    "success_envelope",
    "utc_timestamp",
]
