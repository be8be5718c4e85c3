"""Stored API key routes.

Routes are transport-only: each calls one service function, then drops
the cached plaintext so the next outbound call sees the new key.

- GET /keys: Masked status of every service's key
- PUT /keys/{service}: Add or replace the key for a service
- DELETE /keys/{service}: Remove the key for a service

All routes require authentication.
Response envelope: {"data": ...}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}

Security invariants:
- Responses never include the stored envelope or the plaintext key
- Plaintext keys are never logged
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from socialbro.api.deps import get_credential_cache, get_db, get_valid_viewer
from socialbro.auth.middleware import Viewer
from socialbro.responses import success_response
from socialbro.schemas.keys import StoredKeyUpsert
from socialbro.services import credential_store
from socialbro.services.credential_cache import CredentialCache

router = APIRouter(tags=["keys"])


@router.get("/keys")
def list_keys(
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List every service with the viewer's key masked.

    Returns:
        {"data": [StoredKeyOut, ...]}
    """
    keys = credential_store.list_credentials(db=db, user_id=viewer.user_id)
    return success_response([k.model_dump(mode="json") for k in keys])


@router.put("/keys/{service}", status_code=201)
def upsert_key(
    service: str,
    body: StoredKeyUpsert,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
    cache: Annotated[CredentialCache, Depends(get_credential_cache)],
    response: Response,
) -> dict:
    """Add or replace the key for a service.

    Returns:
        201 Created (new key): {"data": StoredKeyOut}
        200 OK (replaced key): {"data": StoredKeyOut}

    Errors:
        E_KEY_SERVICE_INVALID (400): Unknown service
        E_KEY_INVALID_FORMAT (400): Empty key or key contains whitespace
    """
    key_out, is_created = credential_store.save_user_key(
        db=db,
        user_id=viewer.user_id,
        service=service,
        api_key=body.api_key,
    )
    cache.invalidate(viewer.user_id, key_out.service)

    if not is_created:
        response.status_code = 200

    return success_response(key_out.model_dump(mode="json"))


@router.delete("/keys/{service}", status_code=204)
def delete_key(
    service: str,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
    cache: Annotated[CredentialCache, Depends(get_credential_cache)],
) -> Response:
    """Delete the key for a service.

    Errors:
        E_KEY_SERVICE_INVALID (400): Unknown service
        E_KEY_NOT_FOUND (404): No key stored for this service
    """
    credential_store.delete_credential(db=db, user_id=viewer.user_id, service=service)
    cache.invalidate(viewer.user_id, service.lower())
    return Response(status_code=204)
