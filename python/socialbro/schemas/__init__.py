"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from socialbro.schemas.admin import InviteCreate, InvitedUserOut, InviteOut, MeOut
from socialbro.schemas.keys import StoredKeyOut, StoredKeyUpsert
from socialbro.schemas.search import (
    SavedSearchCreate,
    SavedSearchDetailOut,
    SavedSearchOut,
    TikTokVideoOut,
    TranscriptOut,
    YouTubeVideoOut,
)
from socialbro.schemas.youtube import YouTubeConfigIn, YouTubeConfigOut

__all__ = [
    # Admin / users
    "InviteCreate",
    "InviteOut",
    "InvitedUserOut",
    "MeOut",
    # Keys
    "StoredKeyOut",
    "StoredKeyUpsert",
    # Search
    "SavedSearchCreate",
    "SavedSearchDetailOut",
    "SavedSearchOut",
    "TikTokVideoOut",
    "TranscriptOut",
    "YouTubeVideoOut",
    # YouTube settings
    "YouTubeConfigIn",
    "YouTubeConfigOut",
]
