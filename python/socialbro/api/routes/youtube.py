"""YouTube routes.

- GET/POST /youtube/config: The viewer's search settings
- GET /youtube/search: Keyword search with statistics
- GET /youtube/videos: Details for a list of video ids
- GET /youtube/transcript: Transcript of one video (via RapidAPI)

Search and transcript calls spend the viewer's third-party quota and are
rate limited.
"""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from socialbro.api.deps import (
    get_api_client,
    get_cancel_event,
    get_db,
    get_valid_viewer,
    rate_limit_search,
)
from socialbro.auth.middleware import Viewer
from socialbro.errors import ApiErrorCode, InvalidRequestError
from socialbro.responses import success_response
from socialbro.schemas.youtube import YouTubeConfigIn
from socialbro.services import youtube_config
from socialbro.services.external import rapidapi, youtube
from socialbro.services.external.client import ExternalApiClient

router = APIRouter(prefix="/youtube", tags=["youtube"])


@router.get("/config")
def get_config(
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Saved search settings, or the defaults if none are saved."""
    config = youtube_config.get_config(db, viewer.user_id)
    return success_response(config.model_dump())


@router.post("/config")
def save_config(
    body: YouTubeConfigIn,
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Save search settings. Invalid values are replaced by defaults."""
    config = youtube_config.save_config(db, viewer.user_id, body)
    return success_response(config.model_dump())


@router.get("/search")
async def search(
    viewer: Annotated[Viewer, Depends(rate_limit_search)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[ExternalApiClient, Depends(get_api_client)],
    cancel_event: Annotated[asyncio.Event, Depends(get_cancel_event)],
    q: Annotated[str, Query(min_length=1, max_length=500)],
) -> dict:
    """Search videos using the viewer's saved settings."""
    config = await run_in_threadpool(youtube_config.get_config, db, viewer.user_id)
    results = await youtube.search_videos(
        client, viewer.user_id, q.strip(), config, cancel_event=cancel_event
    )
    return success_response({"results": [r.model_dump(mode="json") for r in results]})


@router.get("/videos")
async def videos(
    viewer: Annotated[Viewer, Depends(get_valid_viewer)],
    client: Annotated[ExternalApiClient, Depends(get_api_client)],
    cancel_event: Annotated[asyncio.Event, Depends(get_cancel_event)],
    ids: Annotated[str, Query(min_length=1)],
) -> dict:
    """Details for comma-separated video ids. Malformed ids are ignored."""
    video_ids = youtube.valid_video_ids(ids.split(","))
    if not video_ids:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "No valid video IDs provided")

    results = await youtube.get_videos(client, viewer.user_id, video_ids, cancel_event=cancel_event)
    return success_response({"videos": [v.model_dump(mode="json") for v in results]})


@router.get("/transcript")
async def transcript(
    viewer: Annotated[Viewer, Depends(rate_limit_search)],
    client: Annotated[ExternalApiClient, Depends(get_api_client)],
    cancel_event: Annotated[asyncio.Event, Depends(get_cancel_event)],
    url: Annotated[str, Query(min_length=1, max_length=2048)],
    lang: Annotated[str, Query(min_length=2, max_length=10)] = rapidapi.DEFAULT_TRANSCRIPT_LANG,
) -> dict:
    """Transcript of a video given its URL or bare id."""
    result = await rapidapi.get_transcript(
        client, viewer.user_id, url.strip(), lang=lang, cancel_event=cancel_event
    )
    return success_response(result.model_dump())
