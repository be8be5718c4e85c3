"""Per-user YouTube search settings.

Each user has at most one youtube_configs row. Reads fall back to the
defaults when no row exists. Writes normalize every field: out-of-range or
unknown values are replaced by the default rather than rejected.
"""

import math
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from socialbro.db.models import YouTubeConfig
from socialbro.logging import get_logger
from socialbro.schemas.youtube import YouTubeConfigIn, YouTubeConfigOut

logger = get_logger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 50

DEFAULT_CONFIG = YouTubeConfigOut(
    max_results=25,
    date_range="any",
    region="US",
    video_duration="any",
    order="relevance",
)

DATE_RANGES = frozenset({"any", "day", "week", "month"})
VIDEO_DURATIONS = frozenset({"any", "short", "medium", "long"})
ORDERS = frozenset({"date", "rating", "relevance", "title", "viewCount"})

# ISO 3166-1 alpha-2 codes offered in the settings UI
REGION_CODES = frozenset(
    {
        "US", "GB", "CA", "AU", "DE", "FR", "JP", "KR", "IN", "BR", "MX", "ES",
        "IT", "NL", "RU", "PL", "SE", "NO", "DK", "FI", "AT", "CH", "BE", "PT",
        "IE", "NZ", "SG", "HK", "TW", "PH", "ID", "MY", "TH", "VN", "ZA", "AR",
        "CL", "CO", "PE", "EG", "SA", "AE", "IL", "TR", "UA",
    }
)  # fmt: skip

DATE_RANGE_DAYS = {"day": 1, "week": 7, "month": 30}


def _clamp_max_results(value: Any) -> int:
    # 0, NaN, garbage, and missing all mean "use the default"
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if not number or math.isnan(number):
        number = DEFAULT_CONFIG.max_results
    # Clamp before truncating so 0 < n < 1 becomes 1
    return int(min(max(number, MIN_RESULTS), MAX_RESULTS))


def _choice(value: Any, allowed: frozenset[str], default: str) -> str:
    if isinstance(value, str) and value in allowed:
        return value
    return default


def normalize_config(data: YouTubeConfigIn) -> YouTubeConfigOut:
    """Replace every invalid field with its default."""
    region = data.region.upper() if isinstance(data.region, str) else None

    return YouTubeConfigOut(
        max_results=_clamp_max_results(data.max_results),
        date_range=_choice(data.date_range, DATE_RANGES, DEFAULT_CONFIG.date_range),
        region=_choice(region, REGION_CODES, DEFAULT_CONFIG.region),
        video_duration=_choice(data.video_duration, VIDEO_DURATIONS, DEFAULT_CONFIG.video_duration),
        order=_choice(data.order, ORDERS, DEFAULT_CONFIG.order),
    )


def _to_out(row: YouTubeConfig) -> YouTubeConfigOut:
    return YouTubeConfigOut(
        max_results=row.max_results,
        date_range=row.date_range,
        region=row.region,
        video_duration=row.video_duration,
        order=row.order,
    )


def get_config(db: Session, user_id: UUID) -> YouTubeConfigOut:
    """Return the user's settings, or the defaults if none are saved."""
    row = db.scalars(select(YouTubeConfig).where(YouTubeConfig.user_id == user_id)).first()
    if row is None:
        return DEFAULT_CONFIG.model_copy()
    return _to_out(row)


def save_config(db: Session, user_id: UUID, data: YouTubeConfigIn) -> YouTubeConfigOut:
    """Normalize and upsert the user's settings."""
    config = normalize_config(data)

    row = db.scalars(select(YouTubeConfig).where(YouTubeConfig.user_id == user_id)).first()
    if row is None:
        row = YouTubeConfig(user_id=user_id)
        db.add(row)

    row.max_results = config.max_results
    row.date_range = config.date_range
    row.region = config.region
    row.video_duration = config.video_duration
    row.order = config.order

    db.flush()
    db.commit()

    logger.info("youtube_config_saved", user_id=str(user_id), **config.model_dump())
    return config


def published_after(date_range: str, now: datetime | None = None) -> str | None:
    """RFC 3339 lower bound for a date range, or None for "any"."""
    days = DATE_RANGE_DAYS.get(date_range)
    if days is None:
        return None
    now = now or datetime.now(UTC)
    return (now - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")
