"""Operator routes for invite-only sign-up.

Authenticated with "Authorization: Bearer <ADMIN_SECRET>" (see
auth.admin); these paths bypass the session-token middleware.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialbro.api.deps import get_db
from socialbro.auth.admin import require_admin
from socialbro.config import get_settings
from socialbro.responses import success_response
from socialbro.schemas.admin import InviteCreate
from socialbro.services import invites

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/invite")
def invite(
    body: InviteCreate,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a pending user and return the invite URL to share with them.

    Errors:
        E_USER_EXISTS (400): Email already registered
    """
    result = invites.invite_user(
        db,
        email=body.email,
        name=body.name,
        base_url=get_settings().public_base_url,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/invite")
def list_invites(db: Annotated[Session, Depends(get_db)]) -> dict:
    """All users with status "active" (signed in at least once) or "pending"."""
    users = invites.list_invited_users(db)
    return success_response({"users": [u.model_dump(mode="json") for u in users]})
