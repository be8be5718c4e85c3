"""Test helpers for authentication and seeding.

Provides:
- Token minting for test authentication
- Header generation for test requests
- User and stored-key seeding
"""

import time
from uuid import UUID, uuid4

import jwt
from sqlalchemy.orm import Session

from socialbro.db.models import ApiKey, User
from socialbro.services.crypto import encrypt
from tests.support.jwt_verifier import TEST_AUDIENCE, TEST_ISSUER, MockJwtVerifier

DEFAULT_EXPIRES_IN = 3600


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = TEST_ISSUER,
    audience: str = TEST_AUDIENCE,
    **extra_claims,
) -> str:
    """Mint a JWT the MockJwtVerifier accepts."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    return jwt.encode(payload, MockJwtVerifier.get_private_key(), algorithm="RS256")


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    """Return headers dict with valid Authorization for the given user."""
    return {"Authorization": f"Bearer {mint_test_token(user_id, **token_kwargs)}"}


def create_user(db: Session, email: str | None = None, name: str | None = None) -> User:
    """Insert an invited user and return it."""
    user = User(
        id=uuid4(),
        email=email or f"{uuid4().hex[:8]}@example.com",
        name=name,
        invite_token=uuid4().hex,
    )
    db.add(user)
    db.commit()
    return user


def store_key(db: Session, user_id: UUID, service: str, plaintext: str) -> ApiKey:
    """Encrypt and store a key directly, bypassing the service layer."""
    row = ApiKey(user_id=user_id, service=service, key=encrypt(plaintext))
    db.add(row)
    db.commit()
    return row
