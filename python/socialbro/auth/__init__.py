"""Authentication and authorization module.

This module provides:
- Token verification (JWKS verifier)
- Auth middleware for FastAPI
- Request state with viewer identity
- Admin secret check for operator routes

Note: Test-only verifiers are in tests/support/jwt_verifier.py
"""

from socialbro.auth.admin import require_admin
from socialbro.auth.middleware import AuthMiddleware, Viewer, get_viewer
from socialbro.auth.verifier import JwksTokenVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "require_admin",
    "JwksTokenVerifier",
    "TokenVerifier",
]
