"""Calls routed through the RapidAPI gateway.

- YouTube transcripts via the fast transcriber API
- TikTok keyword search via the TikTok scraper API

The gateway key is sent by ExternalApiClient in X-RapidAPI-Key; each call
only names its host and endpoint.
"""

import asyncio
import re
from typing import Any
from uuid import UUID

from socialbro.errors import ApiError, ApiErrorCode
from socialbro.logging import get_logger
from socialbro.schemas.search import TikTokVideoOut, TranscriptOut
from socialbro.services.external.client import ApiRequest, ExternalApiClient
from socialbro.services.external.normalize import normalize_tiktok_search
from socialbro.services.redact import hash_text, safe_kv

logger = get_logger(__name__)

TRANSCRIPT_HOST = "youtube-transcribe-fastest-youtube-transcriber.p.rapidapi.com"
TIKTOK_HOST = "tiktok-scraper7.p.rapidapi.com"

DEFAULT_TRANSCRIPT_LANG = "en"
DEFAULT_TIKTOK_COUNT = 20
DEFAULT_TIKTOK_REGION = "us"

VIDEO_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
)


def extract_video_id(url: str) -> str:
    """Pull the video id out of a watch, short, or embed URL.

    A bare 11-character id is returned unchanged, and so is anything that
    matches no pattern.
    """
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return url


def _transcript_failure(payload: dict[str, Any]) -> str | None:
    if payload.get("status") != "success" or not isinstance(payload.get("data"), dict):
        return payload.get("error") or payload.get("message") or "Failed to extract transcript"
    if not payload["data"].get("text"):
        return "No transcript available for this video"
    return None


async def get_transcript(
    client: ExternalApiClient,
    user_id: UUID,
    video_url: str,
    lang: str = DEFAULT_TRANSCRIPT_LANG,
    cancel_event: asyncio.Event | None = None,
) -> TranscriptOut:
    """Fetch a YouTube transcript.

    Raises:
        ApiError: E_TRANSCRIPT_UNAVAILABLE if the provider reports failure
            or returns no text.
    """
    video_id = extract_video_id(video_url)

    payload = await client.request(
        user_id,
        ApiRequest(
            host=TRANSCRIPT_HOST,
            endpoint="/transcript",
            params={"url": video_url, "video_id": video_id, "lang": lang},
        ),
        cancel_event=cancel_event,
    )
    if not isinstance(payload, dict):
        payload = {}

    failure = _transcript_failure(payload)
    if failure:
        logger.warning(
            "transcript_unavailable",
            user_id=str(user_id),
            video_id=video_id,
            provider_status=payload.get("status"),
            reason=failure,
        )
        raise ApiError(ApiErrorCode.E_TRANSCRIPT_UNAVAILABLE, "Transcript unavailable for this video")

    data = payload["data"]
    text = data["text"]
    logger.info(
        "transcript_fetched",
        **safe_kv(user_id=str(user_id), video_id=video_id, transcript_chars=len(text)),
    )
    return TranscriptOut(
        video_id=video_id,
        lang=data.get("lang") or lang,
        available_langs=list(data.get("available_langs") or []),
        transcript=text,
    )


async def search_tiktok(
    client: ExternalApiClient,
    user_id: UUID,
    keyword: str,
    *,
    count: int = DEFAULT_TIKTOK_COUNT,
    cursor: int = 0,
    region: str = DEFAULT_TIKTOK_REGION,
    cancel_event: asyncio.Event | None = None,
) -> list[TikTokVideoOut]:
    """Keyword search over TikTok videos."""
    payload = await client.request(
        user_id,
        ApiRequest(
            host=TIKTOK_HOST,
            endpoint="/feed/search",
            params={
                "keywords": keyword,
                "count": count,
                "cursor": cursor,
                "region": region,
            },
        ),
        cancel_event=cancel_event,
    )

    results = normalize_tiktok_search(payload)
    logger.info(
        "tiktok_search_completed",
        **safe_kv(
            user_id=str(user_id),
            query_chars=len(keyword),
            query_sha256=hash_text(keyword),
            result_count=len(results),
        ),
    )
    return results
