"""Pure functions that flatten provider payloads into result rows.

Providers omit fields freely, so every accessor tolerates missing or null
values and falls back to an empty string, zero, or the next-best field.
Text fields from YouTube arrive HTML-escaped and are unescaped here.
"""

import html
from datetime import UTC, datetime
from typing import Any

from socialbro.schemas.search import TikTokVideoOut, YouTubeVideoOut

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
TIKTOK_VIDEO_URL = "https://www.tiktok.com/@{author}/video/{video_id}"

THUMBNAIL_PREFERENCE = ("high", "medium", "default")


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def decode_text(value: Any) -> str:
    """Decode HTML entities ("&amp;", "&#39;") in provider text."""
    if not value:
        return ""
    return html.unescape(str(value))


def best_thumbnail(thumbnails: Any) -> str:
    """Pick the highest-resolution thumbnail URL available."""
    thumbnails = _dict(thumbnails)
    for size in THUMBNAIL_PREFERENCE:
        url = _dict(thumbnails.get(size)).get("url")
        if url:
            return url
    return ""


def normalize_youtube_video(item: dict[str, Any]) -> YouTubeVideoOut:
    """Normalize one item of a YouTube /videos response."""
    snippet = _dict(item.get("snippet"))
    statistics = _dict(item.get("statistics"))
    content_details = _dict(item.get("contentDetails"))
    video_id = item.get("id") or ""

    return YouTubeVideoOut(
        id=video_id,
        title=decode_text(snippet.get("title")),
        description=decode_text(snippet.get("description")),
        thumbnail=best_thumbnail(snippet.get("thumbnails")),
        channel_id=snippet.get("channelId") or "",
        channel_title=decode_text(snippet.get("channelTitle")),
        published_at=snippet.get("publishedAt") or "",
        view_count=statistics.get("viewCount") or "0",
        like_count=statistics.get("likeCount") or "0",
        comment_count=statistics.get("commentCount") or "0",
        duration=content_details.get("duration") or "",
        tags=list(snippet.get("tags") or []),
        url=YOUTUBE_WATCH_URL.format(video_id=video_id) if video_id else "",
    )


def normalize_youtube_videos(payload: Any) -> list[YouTubeVideoOut]:
    items = _dict(payload).get("items") or []
    return [normalize_youtube_video(item) for item in items if isinstance(item, dict)]


def search_video_ids(payload: Any) -> list[str]:
    """Extract video ids from a YouTube /search response, in rank order.

    Channel and playlist hits carry no videoId and are skipped.
    """
    ids = []
    for item in _dict(payload).get("items") or []:
        video_id = _dict(_dict(item).get("id")).get("videoId")
        if video_id:
            ids.append(video_id)
    return ids


def _timestamp(value: Any) -> datetime | None:
    seconds = _int(value)
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=UTC)


def normalize_tiktok_video(item: dict[str, Any]) -> TikTokVideoOut:
    """Normalize one video of a TikTok scraper search response."""
    author = _dict(item.get("author"))
    video_id = str(item.get("video_id") or item.get("aweme_id") or "")
    unique_id = author.get("unique_id") or ""

    return TikTokVideoOut(
        id=video_id,
        title=decode_text(item.get("title")),
        author=unique_id,
        author_name=author.get("nickname") or "",
        cover=item.get("cover") or item.get("origin_cover") or "",
        duration=_int(item.get("duration")),
        play_count=_int(item.get("play_count")),
        like_count=_int(item.get("digg_count")),
        comment_count=_int(item.get("comment_count")),
        share_count=_int(item.get("share_count")),
        created_at=_timestamp(item.get("create_time")),
        url=(
            TIKTOK_VIDEO_URL.format(author=unique_id, video_id=video_id)
            if unique_id and video_id
            else ""
        ),
    )


def normalize_tiktok_search(payload: Any) -> list[TikTokVideoOut]:
    data = _dict(_dict(payload).get("data"))
    videos = data.get("videos") or []
    return [normalize_tiktok_video(v) for v in videos if isinstance(v, dict)]
