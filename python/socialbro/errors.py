"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"
    E_SESSION_INVALID = "E_SESSION_INVALID"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_KEY_NOT_FOUND = "E_KEY_NOT_FOUND"
    E_SAVED_SEARCH_NOT_FOUND = "E_SAVED_SEARCH_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_KEY_SERVICE_INVALID = "E_KEY_SERVICE_INVALID"
    E_KEY_INVALID_FORMAT = "E_KEY_INVALID_FORMAT"
    E_USER_EXISTS = "E_USER_EXISTS"

    # Credential errors (400) - actionable by the user in Settings
    E_KEY_NOT_CONFIGURED = "E_KEY_NOT_CONFIGURED"
    E_KEY_INVALID = "E_KEY_INVALID"
    E_UPSTREAM_AUTH_FAILED = "E_UPSTREAM_AUTH_FAILED"

    # Throttling (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"
    E_UPSTREAM_RATE_LIMITED = "E_UPSTREAM_RATE_LIMITED"

    # Client closed request (499)
    E_REQUEST_CANCELLED = "E_REQUEST_CANCELLED"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500
    E_UPSTREAM_ERROR = "E_UPSTREAM_ERROR"  # 502
    E_TRANSCRIPT_UNAVAILABLE = "E_TRANSCRIPT_UNAVAILABLE"  # 502
    E_UPSTREAM_UNAVAILABLE = "E_UPSTREAM_UNAVAILABLE"  # 503
    E_NETWORK_ERROR = "E_NETWORK_ERROR"  # 503
    E_RESOURCE_EXHAUSTED = "E_RESOURCE_EXHAUSTED"  # 503
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_SESSION_INVALID: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_KEY_NOT_FOUND: 404,
    ApiErrorCode.E_SAVED_SEARCH_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_KEY_SERVICE_INVALID: 400,
    ApiErrorCode.E_KEY_INVALID_FORMAT: 400,
    ApiErrorCode.E_USER_EXISTS: 400,
    ApiErrorCode.E_KEY_NOT_CONFIGURED: 400,
    ApiErrorCode.E_KEY_INVALID: 400,
    ApiErrorCode.E_UPSTREAM_AUTH_FAILED: 400,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_UPSTREAM_RATE_LIMITED: 429,
    ApiErrorCode.E_REQUEST_CANCELLED: 499,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_UPSTREAM_ERROR: 502,
    ApiErrorCode.E_TRANSCRIPT_UNAVAILABLE: 502,
    ApiErrorCode.E_UPSTREAM_UNAVAILABLE: 503,
    ApiErrorCode.E_NETWORK_ERROR: 503,
    ApiErrorCode.E_RESOURCE_EXHAUSTED: 503,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)
