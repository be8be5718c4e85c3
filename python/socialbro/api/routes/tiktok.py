"""TikTok routes (via the RapidAPI gateway)."""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from socialbro.api.deps import get_api_client, get_cancel_event, rate_limit_search
from socialbro.auth.middleware import Viewer
from socialbro.responses import success_response
from socialbro.services.external import rapidapi
from socialbro.services.external.client import ExternalApiClient

router = APIRouter(prefix="/tiktok", tags=["tiktok"])


@router.get("/search")
async def search(
    viewer: Annotated[Viewer, Depends(rate_limit_search)],
    client: Annotated[ExternalApiClient, Depends(get_api_client)],
    cancel_event: Annotated[asyncio.Event, Depends(get_cancel_event)],
    q: Annotated[str, Query(min_length=1, max_length=500)],
    count: Annotated[int, Query(ge=1, le=50)] = rapidapi.DEFAULT_TIKTOK_COUNT,
    cursor: Annotated[int, Query(ge=0)] = 0,
) -> dict:
    """Keyword search over TikTok videos."""
    results = await rapidapi.search_tiktok(
        client,
        viewer.user_id,
        q.strip(),
        count=count,
        cursor=cursor,
        cancel_event=cancel_event,
    )
    return success_response({"results": [r.model_dump(mode="json") for r in results]})
