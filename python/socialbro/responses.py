"""API response envelope helpers and exception handlers.

All API responses use a consistent envelope:
- Success: { "data": ... }
- Error: { "error": { "code": "E_...", "message": "...", "request_id": "..." } }

The request_id is included in error responses for debugging and support.

Classified errors from the credential and outbound-API layers are mapped to
status codes here and nowhere else. Provider messages and stack traces are
logged, never returned.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

from socialbro.errors import ERROR_CODE_TO_STATUS, ApiError, ApiErrorCode
from socialbro.logging import get_logger, get_request_id
from socialbro.services.crypto import ConfigurationError
from socialbro.services.external.errors import (
    CredentialNotConfiguredError,
    ExternalServiceError,
    InvalidStoredCredentialError,
    NetworkError,
    RequestCancelledError,
    ResourceExhaustedError,
    TransientUpstreamError,
    UpstreamError,
    display_name,
)

logger = get_logger(__name__)

UPSTREAM_AUTH_MESSAGE = "{service} rejected the API key. Check your key in Settings."
UPSTREAM_RATE_LIMIT_MESSAGE = "{service} rate limit reached. Please try again later."
UPSTREAM_UNAVAILABLE_MESSAGE = "{service} is temporarily unavailable. Please try again."
UPSTREAM_ERROR_MESSAGE = "{service} request failed."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection."


def success_response(data: Any) -> dict[str, Any]:
    """Create a success response envelope.

    Args:
        data: The response data to wrap.

    Returns:
        Dict with "data" key containing the response.
    """
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Create an error response envelope.

    Args:
        code: The error code enum value.
        message: Human-readable error message.
        request_id: Optional request ID for correlation (auto-populated from context if None).

    Returns:
        Dict with "error" key containing code, message, and request_id.
    """
    if request_id is None:
        request_id = get_request_id()

    error = {"code": code.value, "message": message}
    if request_id:
        error["request_id"] = request_id

    return {"error": error}


def _json_error(code: ApiErrorCode, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_CODE_TO_STATUS.get(code, 500),
        content=error_response(code, message),
    )


def classify_external_error(exc: ExternalServiceError) -> tuple[ApiErrorCode, str]:
    """Map a classified external error to an API error code and safe message."""
    service = display_name(exc.service)

    if isinstance(exc, (CredentialNotConfiguredError, InvalidStoredCredentialError)):
        code = (
            ApiErrorCode.E_KEY_NOT_CONFIGURED
            if isinstance(exc, CredentialNotConfiguredError)
            else ApiErrorCode.E_KEY_INVALID
        )
        return code, exc.message
    if isinstance(exc, UpstreamError):
        if exc.is_rate_limited:
            return ApiErrorCode.E_UPSTREAM_RATE_LIMITED, UPSTREAM_RATE_LIMIT_MESSAGE.format(
                service=service
            )
        if isinstance(exc, TransientUpstreamError):
            return ApiErrorCode.E_UPSTREAM_UNAVAILABLE, UPSTREAM_UNAVAILABLE_MESSAGE.format(
                service=service
            )
        if exc.is_auth_failure:
            return ApiErrorCode.E_UPSTREAM_AUTH_FAILED, UPSTREAM_AUTH_MESSAGE.format(
                service=service
            )
        return ApiErrorCode.E_UPSTREAM_ERROR, UPSTREAM_ERROR_MESSAGE.format(service=service)
    if isinstance(exc, NetworkError):
        return ApiErrorCode.E_NETWORK_ERROR, NETWORK_ERROR_MESSAGE
    if isinstance(exc, ResourceExhaustedError):
        return ApiErrorCode.E_RESOURCE_EXHAUSTED, exc.message
    if isinstance(exc, RequestCancelledError):
        return ApiErrorCode.E_REQUEST_CANCELLED, exc.message
    return ApiErrorCode.E_INTERNAL, "Internal server error"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions and return proper JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
    )


async def external_service_error_handler(
    request: Request, exc: ExternalServiceError
) -> JSONResponse:
    """Handle classified credential and upstream errors."""
    code, message = classify_external_error(exc)
    logger.warning(
        "external_service_error",
        service=exc.service,
        error_type=type(exc).__name__,
        error_code=code.value,
        status_code=getattr(exc, "status_code", None),
        provider_message=getattr(exc, "provider_message", None),
    )
    return _json_error(code, message)


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """A stored key exists but the server has no master secret to decrypt it."""
    logger.error("encryption_not_configured", error=str(exc))
    return _json_error(ApiErrorCode.E_INTERNAL, "Internal server error")


async def pool_timeout_handler(request: Request, exc: sa_exc.TimeoutError) -> JSONResponse:
    """Database pool exhausted while serving a request."""
    logger.error("db_pool_exhausted", path=request.url.path)
    return _json_error(ApiErrorCode.E_RESOURCE_EXHAUSTED, "Server is busy. Please try again.")


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle FastAPI HTTPException and return proper JSON response."""
    status_to_code = {
        400: ApiErrorCode.E_INVALID_REQUEST,
        401: ApiErrorCode.E_UNAUTHENTICATED,
        403: ApiErrorCode.E_FORBIDDEN,
        404: ApiErrorCode.E_NOT_FOUND,
        422: ApiErrorCode.E_INVALID_REQUEST,
    }
    code = status_to_code.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions and return 500 with E_INTERNAL.

    Logs the exception server-side but never leaks details to client.
    """
    logger.exception("Unhandled exception: %s", exc)

    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
    )
