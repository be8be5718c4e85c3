"""Stored API key service layer.

Handles per-user API keys for third-party services:
- Look up the stored envelope for (user_id, service)
- List a user's keys in masked form
- Upsert (add/update) keys with encryption
- Delete keys

Keys are encrypted at rest with AES-256-GCM (see services.crypto) and
stored as a single "<iv>:<tag>:<ciphertext>" envelope. Upsert is by
(user_id, service): saving a key for the same service replaces the row.

Security invariants:
- Plaintext keys never persist beyond request scope
- Never log plaintext keys or envelopes
- Envelopes are never returned to clients
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from socialbro.db.models import KEY_SERVICES, ApiKey
from socialbro.errors import ApiError, ApiErrorCode
from socialbro.logging import get_logger
from socialbro.schemas.keys import StoredKeyOut
from socialbro.services.crypto import (
    AuthenticationError,
    MalformedEnvelopeError,
    decrypt,
    encrypt,
    mask_secret,
)

logger = get_logger(__name__)

VALID_SERVICES = frozenset(KEY_SERVICES)


def normalize_service(service: str) -> str:
    """Lowercase and validate a service name.

    Raises:
        ApiError: E_KEY_SERVICE_INVALID if the service is unknown.
    """
    service = service.lower()
    if service not in VALID_SERVICES:
        raise ApiError(
            ApiErrorCode.E_KEY_SERVICE_INVALID,
            f"Unknown service: {service}. Must be one of: {', '.join(sorted(VALID_SERVICES))}",
        )
    return service


def find_credential(db: Session, user_id: UUID, service: str) -> ApiKey | None:
    """Return the stored key row for (user_id, service), or None."""
    stmt = select(ApiKey).where(
        ApiKey.user_id == user_id,
        ApiKey.service == service,
    )
    return db.scalars(stmt).first()


def list_credentials(db: Session, user_id: UUID) -> list[StoredKeyOut]:
    """List every known service with the user's key masked.

    A stored key that no longer decrypts is reported with status "invalid"
    and no masked value, so the UI can prompt the user to re-enter it.
    """
    stmt = select(ApiKey).where(ApiKey.user_id == user_id)
    rows = {row.service: row for row in db.scalars(stmt).all()}

    summaries = []
    for service in KEY_SERVICES:
        row = rows.get(service)
        if row is None:
            summaries.append(StoredKeyOut(service=service, has_key=False))
            continue

        try:
            masked = mask_secret(decrypt(row.key))
            status = "ok"
        except (AuthenticationError, MalformedEnvelopeError):
            masked = None
            status = "invalid"

        summaries.append(
            StoredKeyOut(
                service=service,
                has_key=True,
                masked_key=masked,
                status=status,
                updated_at=row.updated_at,
            )
        )

    return summaries


def upsert_credential(
    db: Session,
    user_id: UUID,
    service: str,
    ciphertext: str,
) -> tuple[ApiKey, bool]:
    """Insert or replace the stored envelope for (user_id, service).

    Returns:
        Tuple of (row, is_created) where is_created is True for a new row.
    """
    existing = find_credential(db, user_id, service)

    if existing:
        existing.key = ciphertext
        db.flush()
        db.commit()
        logger.info("user_key_updated", user_id=str(user_id), service=service)
        return existing, False

    row = ApiKey(user_id=user_id, service=service, key=ciphertext)
    db.add(row)
    db.flush()
    db.commit()
    logger.info("user_key_created", user_id=str(user_id), service=service)
    return row, True


def save_user_key(
    db: Session,
    user_id: UUID,
    service: str,
    api_key: str,
) -> tuple[StoredKeyOut, bool]:
    """Encrypt and store a plaintext key.

    Args:
        db: Database session.
        user_id: The user's ID.
        service: Service name (youtube, rapidapi).
        api_key: The plaintext API key (already validated by schema).

    Returns:
        Tuple of (StoredKeyOut, is_created).

    Raises:
        ApiError: E_KEY_SERVICE_INVALID if service is unknown.
        ApiError: E_KEY_INVALID_FORMAT if the key is empty or contains whitespace.
    """
    service = normalize_service(service)

    api_key = api_key.strip()
    if not api_key:
        raise ApiError(ApiErrorCode.E_KEY_INVALID_FORMAT, "API key is required")
    if any(c.isspace() for c in api_key):
        raise ApiError(ApiErrorCode.E_KEY_INVALID_FORMAT, "API key contains whitespace")

    row, created = upsert_credential(db, user_id, service, encrypt(api_key))

    return (
        StoredKeyOut(
            service=service,
            has_key=True,
            masked_key=mask_secret(api_key),
            status="ok",
            updated_at=row.updated_at,
        ),
        created,
    )


def delete_credential(db: Session, user_id: UUID, service: str) -> None:
    """Delete the user's stored key for a service.

    Raises:
        ApiError: E_KEY_NOT_FOUND if no key is stored.
    """
    service = normalize_service(service)
    row = find_credential(db, user_id, service)
    if row is None:
        raise ApiError(ApiErrorCode.E_KEY_NOT_FOUND, "API key not found")

    db.delete(row)
    db.flush()
    db.commit()

    logger.info("user_key_deleted", user_id=str(user_id), service=service)
