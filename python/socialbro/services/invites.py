"""User invitation and session validation.

Accounts are invite-only: an operator creates the user row with a one-time
invite token, and the user finishes sign-up with the identity provider
through the invite URL. The user's id equals the `sub` claim of their
session tokens.
"""

import secrets
from datetime import UTC, datetime
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from socialbro.db.models import User
from socialbro.errors import ApiError, ApiErrorCode
from socialbro.logging import get_logger
from socialbro.schemas.admin import InvitedUserOut, InviteOut

logger = get_logger(__name__)

INVITE_TOKEN_BYTES = 32

SESSION_INVALID_MESSAGE = "Session invalid. Please log out and log in again."


def build_invite_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/set-password?{urlencode({'token': token})}"


def invite_user(db: Session, email: str, name: str | None, base_url: str) -> InviteOut:
    """Create a pending user and return their invite URL.

    Raises:
        ApiError: E_USER_EXISTS if the email is already registered.
    """
    existing = db.scalars(select(User).where(User.email == email)).first()
    if existing:
        raise ApiError(ApiErrorCode.E_USER_EXISTS, "User already exists")

    token = secrets.token_hex(INVITE_TOKEN_BYTES)
    user = User(email=email, name=name, invite_token=token)
    db.add(user)
    db.flush()
    db.commit()

    logger.info("user_invited", user_id=str(user.id))

    return InviteOut(id=user.id, email=user.email, invite_url=build_invite_url(base_url, token))


def list_invited_users(db: Session) -> list[InvitedUserOut]:
    """All users, newest invitation first."""
    users = db.scalars(select(User).order_by(User.invited_at.desc())).all()
    return [
        InvitedUserOut(
            id=u.id,
            email=u.email,
            name=u.name,
            invited_at=u.invited_at,
            activated_at=u.activated_at,
            status="active" if u.activated_at else "pending",
        )
        for u in users
    ]


def require_valid_user(db: Session, user_id: UUID) -> User:
    """Load the user row behind a verified session token.

    Stamps activated_at on the first authenticated request.

    Raises:
        ApiError: E_SESSION_INVALID if the token's subject has no user row.
    """
    user = db.get(User, user_id)
    if user is None:
        raise ApiError(ApiErrorCode.E_SESSION_INVALID, SESSION_INVALID_MESSAGE)

    if user.activated_at is None:
        user.activated_at = datetime.now(UTC)
        db.flush()
        db.commit()
        logger.info("user_activated", user_id=str(user_id))

    return user
