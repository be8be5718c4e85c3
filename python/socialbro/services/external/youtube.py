"""YouTube Data API v3 calls.

All requests go through ExternalApiClient, which attaches the user's key as
the `key` query parameter and comma-joins list params.
"""

import asyncio
import re
from uuid import UUID

from socialbro.logging import get_logger
from socialbro.schemas.search import YouTubeVideoOut
from socialbro.schemas.youtube import YouTubeConfigOut
from socialbro.services.external.client import YOUTUBE_HOST, ApiRequest, ExternalApiClient
from socialbro.services.external.normalize import normalize_youtube_videos, search_video_ids
from socialbro.services.redact import hash_text, safe_kv
from socialbro.services.youtube_config import published_after

logger = get_logger(__name__)

API_BASE = "/youtube/v3"

VIDEO_PARTS = ["snippet", "statistics", "contentDetails"]

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

# /videos accepts at most 50 ids per call
VIDEOS_BATCH_SIZE = 50


def valid_video_ids(raw_ids: list[str]) -> list[str]:
    """Keep only well-formed 11-character video ids, preserving order."""
    return [video_id for video_id in raw_ids if video_id and VIDEO_ID_RE.match(video_id)]


async def get_videos(
    client: ExternalApiClient,
    user_id: UUID,
    video_ids: list[str],
    cancel_event: asyncio.Event | None = None,
) -> list[YouTubeVideoOut]:
    """Fetch snippet, statistics, and duration for a list of video ids."""
    videos: list[YouTubeVideoOut] = []
    for start in range(0, len(video_ids), VIDEOS_BATCH_SIZE):
        batch = video_ids[start : start + VIDEOS_BATCH_SIZE]
        payload = await client.request(
            user_id,
            ApiRequest(
                host=YOUTUBE_HOST,
                endpoint=f"{API_BASE}/videos",
                params={"part": VIDEO_PARTS, "id": batch},
            ),
            cancel_event=cancel_event,
        )
        videos.extend(normalize_youtube_videos(payload))
    return videos


async def search_videos(
    client: ExternalApiClient,
    user_id: UUID,
    query: str,
    config: YouTubeConfigOut,
    cancel_event: asyncio.Event | None = None,
) -> list[YouTubeVideoOut]:
    """Keyword search using the user's settings, enriched with statistics.

    The /search call only returns ids and snippets, so the hits are looked
    up again through /videos. Rank order from /search is preserved.
    """
    payload = await client.request(
        user_id,
        ApiRequest(
            host=YOUTUBE_HOST,
            endpoint=f"{API_BASE}/search",
            params={
                "part": ["snippet"],
                "type": "video",
                "q": query,
                "maxResults": config.max_results,
                "regionCode": config.region,
                "order": config.order,
                "videoDuration": config.video_duration,
                "publishedAfter": published_after(config.date_range),
            },
        ),
        cancel_event=cancel_event,
    )

    ids = search_video_ids(payload)
    logger.info(
        "youtube_search_completed",
        **safe_kv(
            user_id=str(user_id),
            query_chars=len(query),
            query_sha256=hash_text(query),
            hit_count=len(ids),
        ),
    )
    if not ids:
        return []

    videos = await get_videos(client, user_id, ids, cancel_event=cancel_event)
    rank = {video_id: i for i, video_id in enumerate(ids)}
    return sorted(videos, key=lambda v: rank.get(v.id, len(rank)))
