"""Admin and user Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class InviteCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str | None = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, sep, domain = v.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class InviteOut(BaseModel):
    id: UUID
    email: str
    invite_url: str
    message: str = "User invited. Share the invite URL with them."


class InvitedUserOut(BaseModel):
    id: UUID
    email: str
    name: str | None = None
    invited_at: datetime
    activated_at: datetime | None = None
    status: Literal["active", "pending"]


class MeOut(BaseModel):
    user_id: UUID
    email: str
    name: str | None = None
