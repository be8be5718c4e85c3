"""Search result Pydantic schemas.

Normalized rows returned by the YouTube and TikTok search endpoints and
stored inside saved searches. All provider-specific shapes are flattened
into these models by services.external.normalize.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

SearchPlatform = Literal["youtube", "tiktok", "instagram"]


class YouTubeVideoOut(BaseModel):
    """One YouTube video with statistics.

    Counts are kept as strings, the way the Data API returns them.
    """

    id: str
    title: str = ""
    description: str = ""
    thumbnail: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: str = ""
    view_count: str = "0"
    like_count: str = "0"
    comment_count: str = "0"
    duration: str = ""
    tags: list[str] = Field(default_factory=list)
    url: str = ""


class TikTokVideoOut(BaseModel):
    """One TikTok video from a keyword search."""

    id: str
    title: str = ""
    author: str = ""
    author_name: str = ""
    cover: str = ""
    duration: int = 0
    play_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    created_at: datetime | None = None
    url: str = ""


class TranscriptOut(BaseModel):
    video_id: str
    lang: str
    available_langs: list[str] = Field(default_factory=list)
    transcript: str


class SavedSearchCreate(BaseModel):
    """Request schema for saving a search and its results."""

    platform: SearchPlatform
    query: str = Field(..., min_length=1, max_length=500)
    results: list[dict[str, Any]] = Field(default_factory=list, max_length=500)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Query must not be blank")
        return v


class SavedSearchOut(BaseModel):
    id: UUID
    platform: str
    query: str
    result_count: int
    created_at: datetime


class SavedSearchDetailOut(SavedSearchOut):
    results: list[dict[str, Any]]