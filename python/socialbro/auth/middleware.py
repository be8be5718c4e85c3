"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware for bearer token verification
- get_viewer: Dependency for accessing authenticated viewer identity
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from socialbro.auth.verifier import TokenVerifier
from socialbro.errors import ApiError, ApiErrorCode
from socialbro.responses import error_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"

# Paths that don't require a session token
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

# Admin routes authenticate with ADMIN_SECRET instead of a session token
PUBLIC_PATH_PREFIXES = ("/admin/",)


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
    """

    user_id: UUID


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PATH_PREFIXES)


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None."""
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    return auth_header[7:].strip() or None


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for FastAPI.

    Order of checks:
    1. Skip if public path
    2. Extract and parse bearer token
    3. Verify token via TokenVerifier
    4. Attach Viewer to request state

    Whether the user row still exists is checked per route by
    get_valid_viewer, which needs a database session.
    """

    def __init__(self, app: ASGIApp, verifier: TokenVerifier):
        super().__init__(app)
        self.verifier = verifier

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        if is_public_path(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        token = extract_bearer_token(auth_header)
        if token is None:
            reason = "missing_header" if not auth_header else "invalid_header_format"
            logger.warning(
                "auth_failure",
                extra={"reason": reason, "request_path": request.url.path},
            )
            message = (
                "Authentication required"
                if not auth_header
                else "Invalid authorization header format"
            )
            return self._error_json_response(ApiErrorCode.E_UNAUTHENTICATED, message, 401)

        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return self._error_json_response(e.code, e.message, e.status_code)

        request.state.viewer = Viewer(user_id=UUID(payload["sub"]))

        return await call_next(request)

    def _error_json_response(
        self, code: ApiErrorCode, message: str, status_code: int
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message),
        )


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the authenticated viewer.

    Raises:
        ApiError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer
