"""SQLAlchemy ORM models for socialbro.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are kept portable (Uuid, DateTime, JSON) so the same models
run against PostgreSQL in deployment and SQLite in tests.
"""

import uuid
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Services that accept a per-user API key - must match ck_api_keys_service
KEY_SERVICES = ("youtube", "rapidapi")

# Platforms a saved search can come from
SEARCH_PLATFORMS = ("youtube", "tiktok", "instagram")


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class User(Base):
    """User model - an invited account.

    The id is the `sub` claim of the user's session token.
    activated_at stays NULL until the first authenticated request.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    invite_token: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ApiKey(Base):
    """ApiKey model - one encrypted API key per (user, service).

    `key` holds the "<ivHex>:<authTagHex>:<ciphertextHex>" envelope, never plaintext.
    """

    __tablename__ = "api_keys"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    service: Mapped[str] = mapped_column(Text, nullable=False)
    key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "service IN ('youtube', 'rapidapi')",
            name="ck_api_keys_service",
        ),
        UniqueConstraint("user_id", "service", name="uix_api_keys_user_service"),
    )

    user: Mapped["User"] = relationship("User")


class YouTubeConfig(Base):
    """Per-user YouTube search settings (at most one row per user)."""

    __tablename__ = "youtube_configs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    max_results: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    date_range: Mapped[str] = mapped_column(Text, nullable=False, default="any")
    region: Mapped[str] = mapped_column(Text, nullable=False, default="US")
    video_duration: Mapped[str] = mapped_column(Text, nullable=False, default="any")
    order: Mapped[str] = mapped_column(Text, nullable=False, default="relevance")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "max_results BETWEEN 1 AND 50",
            name="ck_youtube_configs_max_results",
        ),
    )


class SavedSearch(Base):
    """A search the user saved together with its normalized result rows."""

    __tablename__ = "saved_searches"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    platform: Mapped[str] = mapped_column(Text, nullable=False)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    results: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "platform IN ('youtube', 'tiktok', 'instagram')",
            name="ck_saved_searches_platform",
        ),
    )
