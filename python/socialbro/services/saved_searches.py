"""Saved search service layer.

A saved search stores the query and a snapshot of its normalized result
rows. Every operation is scoped to the owner: another user's search is
indistinguishable from a missing one.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from socialbro.db.models import SavedSearch
from socialbro.errors import ApiErrorCode, NotFoundError
from socialbro.logging import get_logger
from socialbro.schemas.search import SavedSearchCreate, SavedSearchDetailOut, SavedSearchOut
from socialbro.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 50


def _summary(row: SavedSearch) -> SavedSearchOut:
    return SavedSearchOut(
        id=row.id,
        platform=row.platform,
        query=row.query,
        result_count=len(row.results or []),
        created_at=row.created_at,
    )


def _get_owned(db: Session, user_id: UUID, search_id: UUID) -> SavedSearch:
    row = db.scalars(
        select(SavedSearch).where(
            SavedSearch.id == search_id,
            SavedSearch.user_id == user_id,
        )
    ).first()
    if row is None:
        raise NotFoundError(ApiErrorCode.E_SAVED_SEARCH_NOT_FOUND, "Saved search not found")
    return row


def create_saved_search(db: Session, user_id: UUID, data: SavedSearchCreate) -> SavedSearchOut:
    row = SavedSearch(
        user_id=user_id,
        platform=data.platform,
        query=data.query,
        results=data.results,
    )
    db.add(row)
    db.flush()
    db.commit()

    logger.info(
        "saved_search_created",
        **safe_kv(
            user_id=str(user_id),
            saved_search_id=str(row.id),
            platform=row.platform,
            query_chars=len(row.query),
            result_count=len(row.results),
        ),
    )
    return _summary(row)


def list_saved_searches(
    db: Session,
    user_id: UUID,
    platform: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[SavedSearchOut]:
    """The user's saved searches, newest first."""
    stmt = select(SavedSearch).where(SavedSearch.user_id == user_id)
    if platform:
        stmt = stmt.where(SavedSearch.platform == platform)
    stmt = stmt.order_by(SavedSearch.created_at.desc()).limit(limit)
    return [_summary(row) for row in db.scalars(stmt).all()]


def get_saved_search(db: Session, user_id: UUID, search_id: UUID) -> SavedSearchDetailOut:
    """Raises NotFoundError if missing or owned by someone else."""
    row = _get_owned(db, user_id, search_id)
    return SavedSearchDetailOut(**_summary(row).model_dump(), results=row.results or [])


def delete_saved_search(db: Session, user_id: UUID, search_id: UUID) -> None:
    row = _get_owned(db, user_id, search_id)
    db.delete(row)
    db.flush()
    db.commit()
    logger.info("saved_search_deleted", user_id=str(user_id), saved_search_id=str(search_id))
