"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, the shared outbound client,
session validation, and rate limiting.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from socialbro.auth.middleware import Viewer, get_viewer
from socialbro.db.session import get_db, get_session_factory
from socialbro.services.credential_cache import CredentialCache
from socialbro.services.external.client import ExternalApiClient
from socialbro.services.invites import require_valid_user
from socialbro.services.rate_limit import get_rate_limiter

__all__ = [
    "get_api_client",
    "get_cancel_event",
    "get_credential_cache",
    "get_db",
    "get_session_factory",
    "get_valid_viewer",
    "rate_limit_search",
]

DISCONNECT_POLL_SECONDS = 0.5


def get_api_client(request: Request) -> ExternalApiClient:
    """Get the shared outbound API client from app state.

    Initialized at app startup around the shared httpx.AsyncClient and the
    process-wide credential cache.
    """
    return request.app.state.api_client


def get_credential_cache(request: Request) -> CredentialCache:
    return request.app.state.credential_cache


def get_valid_viewer(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Viewer:
    """Viewer whose user row still exists.

    Raises:
        ApiError(E_SESSION_INVALID): If the token's user was deleted.
    """
    require_valid_user(db, viewer.user_id)
    return viewer


def rate_limit_search(viewer: Annotated[Viewer, Depends(get_valid_viewer)]) -> Viewer:
    """Apply the per-user search rate limit.

    Raises:
        ApiError(E_RATE_LIMITED): If the limit is exceeded.
    """
    get_rate_limiter().check_rpm_limit(viewer.user_id, scope="search")
    return viewer


async def get_cancel_event(request: Request) -> AsyncIterator[asyncio.Event]:
    """Event that is set once the client disconnects.

    Outbound calls race against it so an abandoned request stops retrying.
    """
    event = asyncio.Event()

    async def watch_disconnect() -> None:
        while not event.is_set():
            if await request.is_disconnected():
                event.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_SECONDS)

    watcher = asyncio.create_task(watch_disconnect())
    try:
        yield event
    finally:
        watcher.cancel()
