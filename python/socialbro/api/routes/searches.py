"""Saved search routes.

All routes are scoped to the viewer; another user's saved search answers
404 exactly like a missing one.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from socialbro.api.deps import get_db, get_valid_viewer
from socialbro.auth.middleware import Viewer
from socialbro.responses import success_response
from socialbro.schemas.search import SavedSearchCreate, SearchPlatform
from socialbro.services import saved_searches

router = APIRouter(prefix="/saved-searches", tags=["saved-searches"])


@router.get("")
def list_searches(
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
    platform: SearchPlatform | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = saved_searches.DEFAULT_LIST_LIMIT,
) -> dict:
    rows = saved_searches.list_saved_searches(db, viewer.user_id, platform=platform, limit=limit)
    return success_response([r.model_dump(mode="json") for r in rows])


@router.post("", status_code=201)
def create_search(
    body: SavedSearchCreate,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    row = saved_searches.create_saved_search(db, viewer.user_id, body)
    return success_response(row.model_dump(mode="json"))


@router.get("/{search_id}")
def get_search(
    search_id: UUID,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    row = saved_searches.get_saved_search(db, viewer.user_id, search_id)
    return success_response(row.model_dump(mode="json"))


@router.delete("/{search_id}", status_code=204)
def delete_search(
    search_id: UUID,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    saved_searches.delete_saved_search(db, viewer.user_id, search_id)
    return Response(status_code=204)
