"""Current user endpoint.

Returns information about the authenticated viewer.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from socialbro.api.deps import get_db
from socialbro.auth.middleware import Viewer, get_viewer
from socialbro.responses import success_response
from socialbro.schemas.admin import MeOut
from socialbro.services.invites import require_valid_user

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get current user information.

    Also marks a freshly invited user as active on first call.

    Errors:
        E_SESSION_INVALID (401): Token is valid but the user no longer exists
    """
    user = require_valid_user(db, viewer.user_id)
    return success_response(
        MeOut(user_id=user.id, email=user.email, name=user.name).model_dump(mode="json")
    )
