"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (verifies session token, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)

Outbound Client Lifecycle:
- One httpx.AsyncClient is created at startup and stored in app.state
- One CredentialCache and one ExternalApiClient wrap it for all requests
- The client is closed gracefully at shutdown
"""

import json
from collections.abc import Callable
from contextlib import asynccontextmanager

import httpx
import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from socialbro.api.routes import create_api_router
from socialbro.auth.middleware import AuthMiddleware
from socialbro.auth.verifier import JwksTokenVerifier, TokenVerifier
from socialbro.config import get_settings
from socialbro.db.session import get_session_factory
from socialbro.errors import ApiError, ApiErrorCode
from socialbro.logging import configure_logging, get_logger
from socialbro.middleware.request_id import RequestIDMiddleware
from socialbro.responses import (
    api_error_handler,
    configuration_error_handler,
    error_response,
    external_service_error_handler,
    http_exception_handler,
    pool_timeout_handler,
    unhandled_exception_handler,
)
from socialbro.services.credential_cache import CredentialCache
from socialbro.services.credential_resolver import CredentialResolver
from socialbro.services.crypto import ConfigurationError
from socialbro.services.external.client import ExternalApiClient
from socialbro.services.external.errors import ExternalServiceError
from socialbro.services.rate_limit import RateLimiter, set_rate_limiter

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_token_verifier() -> JwksTokenVerifier:
    """Create the token verifier from the AUTH_* settings."""
    settings = get_settings()

    return JwksTokenVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


def create_redis_client(redis_url: str | None) -> redis.Redis | None:
    """Connect to Redis, or return None so rate limits fail open."""
    if not redis_url:
        return None
    try:
        client = redis.Redis.from_url(redis_url, decode_responses=True, socket_timeout=5)
        client.ping()
    except redis.RedisError as e:
        logger.warning("redis_client_init_failed", error=str(e))
        return None
    logger.info("redis_client_initialized")
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources.

    - Creates the shared httpx.AsyncClient for connection pooling
    - Creates the credential cache, resolver, and outbound API client
    - Initializes the Redis-backed rate limiter
    - Cleans up on shutdown
    """
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.external_timeout_s, connect=10.0),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )

    app.state.credential_cache = CredentialCache(ttl_seconds=settings.credential_cache_ttl_s)
    resolver = CredentialResolver.default(
        app.state.session_factory or get_session_factory(),
        app.state.credential_cache,
        settings.platform_keys,
    )
    app.state.api_client = ExternalApiClient(
        app.state.httpx_client,
        resolver,
        max_attempts=settings.external_max_attempts,
        base_delay_ms=settings.external_retry_base_delay_ms,
        timeout_s=settings.external_timeout_s,
    )

    logger.info(
        "external_client_initialized",
        max_attempts=settings.external_max_attempts,
        base_delay_ms=settings.external_retry_base_delay_ms,
        cache_ttl_s=settings.credential_cache_ttl_s,
        youtube_fallback_configured=bool(settings.youtube_api_key),
        rapidapi_fallback_configured=bool(settings.rapidapi_key),
    )

    redis_client = create_redis_client(settings.redis_url)
    set_rate_limiter(RateLimiter(redis_client=redis_client, rpm_limit=settings.rate_limit_search_rpm))

    yield

    await app.state.httpx_client.aclose()
    if redis_client is not None:
        redis_client.close()
    logger.info("httpx_client_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        session_factory: Optional session factory for credential lookups
            (defaults to the engine from DATABASE_URL).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="socialbro API",
        description="Search YouTube and TikTok with your own API keys",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(ExternalServiceError, external_service_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(sa_exc.TimeoutError, pool_timeout_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (body, query, and path)."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request"),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Reject malformed JSON bodies before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(AuthMiddleware, verifier=token_verifier or create_token_verifier())
        logger.info("auth_middleware_enabled", env=settings.socialbro_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
