"""Operator authentication for admin routes.

Admin routes are called from scripts, not the browser, and authenticate
with "Authorization: Bearer <ADMIN_SECRET>". When ADMIN_SECRET is unset
every admin request is refused.
"""

import hmac
import logging

from fastapi import Request

from socialbro.auth.middleware import AUTHORIZATION_HEADER, extract_bearer_token
from socialbro.config import get_settings
from socialbro.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)


def require_admin(request: Request) -> None:
    """FastAPI dependency that checks the admin secret in constant time.

    Raises:
        ApiError(E_UNAUTHENTICATED): Secret missing, wrong, or not configured.
    """
    admin_secret = get_settings().admin_secret
    if not admin_secret:
        logger.warning("admin_auth_failure", extra={"reason": "admin_secret_not_configured"})
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Unauthorized")

    token = extract_bearer_token(request.headers.get(AUTHORIZATION_HEADER))
    if token is None or not hmac.compare_digest(token.encode(), admin_secret.encode()):
        logger.warning(
            "admin_auth_failure",
            extra={"reason": "bad_secret", "request_path": request.url.path},
        )
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Unauthorized")
