"""Stored API key Pydantic schemas.

Request and response models for the /keys endpoints.

- No secrets ever leave the backend
- Keys are encrypted at rest
- Responses carry a masked preview only, never the envelope
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Valid services - must match DB constraint
KeyService = Literal["youtube", "rapidapi"]

# missing: no row; ok: row decrypts; invalid: row no longer decrypts
KeyStatus = Literal["missing", "ok", "invalid"]


class StoredKeyOut(BaseModel):
    """Response schema for one service's stored key.

    SECURITY: only the masked preview is included.
    """

    service: str
    has_key: bool
    masked_key: str | None = None
    status: KeyStatus = "missing"
    updated_at: datetime | None = None


class StoredKeyUpsert(BaseModel):
    """Request schema for adding or replacing a key.

    The service comes from the path; an existing key is overwritten.
    """

    api_key: str = Field(
        ...,
        description="The plaintext API key to store",
        min_length=1,
    )

    @field_validator("api_key")
    @classmethod
    def validate_api_key_format(cls, v: str) -> str:
        """Strip surrounding whitespace and reject internal whitespace."""
        v = v.strip()

        if not v:
            raise ValueError("API key is required")

        if any(c.isspace() for c in v):
            raise ValueError("API key contains whitespace")

        return v
