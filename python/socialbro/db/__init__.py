"""Database module for socialbro.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from socialbro.db.engine import create_db_engine, get_engine
from socialbro.db.models import (
    KEY_SERVICES,
    SEARCH_PLATFORMS,
    ApiKey,
    Base,
    SavedSearch,
    User,
    YouTubeConfig,
)
from socialbro.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Models
    "User",
    "ApiKey",
    "YouTubeConfig",
    "SavedSearch",
    # Constants
    "KEY_SERVICES",
    "SEARCH_PLATFORMS",
]
