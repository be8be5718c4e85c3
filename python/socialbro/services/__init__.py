"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers and orchestrate database operations
and outbound API calls.
"""

from socialbro.services.credential_cache import CredentialCache
from socialbro.services.credential_resolver import CredentialResolver, ResolvedKey
from socialbro.services.credential_store import (
    delete_credential,
    find_credential,
    list_credentials,
    save_user_key,
    upsert_credential,
)

__all__ = [
    "CredentialCache",
    "CredentialResolver",
    "ResolvedKey",
    "delete_credential",
    "find_credential",
    "list_credentials",
    "save_user_key",
    "upsert_credential",
]
