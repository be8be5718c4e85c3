"""Process-local TTL cache for decrypted API keys.

Keyed by (user_id, service). Entries expire lazily on read; there is no
background sweep and no size bound beyond one entry per user per service.

One instance is created at startup and stored on app.state; tests build
their own with a fake clock.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from uuid import UUID

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    """A cached plaintext key."""

    value: str
    inserted_at: float


class CredentialCache:
    """Thread-safe TTL cache for plaintext credentials.

    Writers for the same key always write the same freshly decrypted
    value, so plain last-write-wins overwrites are sufficient.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[UUID, str], CacheEntry] = {}
        self._lock = Lock()

    def get(self, user_id: UUID, service: str) -> str | None:
        """Return the cached value, or None on miss or expiry."""
        key = (user_id, service)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry.inserted_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.value

    def set(self, user_id: UUID, service: str, value: str) -> None:
        """Store a value; the TTL clock starts now."""
        with self._lock:
            self._entries[(user_id, service)] = CacheEntry(value=value, inserted_at=self._clock())

    def invalidate(self, user_id: UUID, service: str) -> None:
        """Drop an entry, e.g. after the user replaces or deletes their key."""
        with self._lock:
            self._entries.pop((user_id, service), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        """Current number of entries, including expired ones not yet read."""
        with self._lock:
            return len(self._entries)
