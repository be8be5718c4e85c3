"""API key resolution for outbound third-party calls.

Resolves the plaintext key to use for (user_id, service) by walking an
ordered list of sources:

1. CacheSource: the process-local CredentialCache
2. StoreSource: the user's stored, encrypted key (populates the cache)
3. EnvironmentSource: the process-wide fallback key (never cached)

Each source answers Resolved, Failed, or None. Failed stops the walk, so a
stored key that no longer decrypts is reported to the user instead of
silently falling back to the platform key. None moves on to the next source.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol
from uuid import UUID

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from socialbro.logging import get_logger
from socialbro.services.credential_cache import CredentialCache
from socialbro.services.credential_store import find_credential
from socialbro.services.crypto import AuthenticationError, MalformedEnvelopeError, decrypt
from socialbro.services.external.errors import (
    CredentialError,
    CredentialNotConfiguredError,
    InvalidStoredCredentialError,
    ResourceExhaustedError,
)

logger = get_logger(__name__)

KeySource = Literal["cache", "store", "environment"]


@dataclass
class ResolvedKey:
    """Result of API key resolution."""

    api_key: str
    source: KeySource
    service: str


@dataclass
class Failed:
    """A source found a credential but it is unusable; stop resolving."""

    error: CredentialError


class CredentialSource(Protocol):
    async def lookup(self, user_id: UUID, service: str) -> ResolvedKey | Failed | None: ...


class CacheSource:
    def __init__(self, cache: CredentialCache):
        self.cache = cache

    async def lookup(self, user_id: UUID, service: str) -> ResolvedKey | None:
        value = self.cache.get(user_id, service)
        if value is None:
            return None
        return ResolvedKey(api_key=value, source="cache", service=service)


class StoreSource:
    """Reads and decrypts the user's stored key.

    The lookup runs sync SQLAlchemy in the threadpool. Only the decrypted
    value is cached, and only after decryption succeeded.
    """

    def __init__(self, session_factory: Callable[[], Session], cache: CredentialCache):
        self.session_factory = session_factory
        self.cache = cache

    def _read_and_decrypt(self, user_id: UUID, service: str) -> ResolvedKey | Failed | None:
        with self.session_factory() as db:
            try:
                row = find_credential(db, user_id, service)
            except sa_exc.TimeoutError as e:
                logger.error(
                    "credential_store_pool_exhausted",
                    user_id=str(user_id),
                    service=service,
                )
                raise ResourceExhaustedError(service) from e

            if row is None:
                return None
            envelope = row.key

        try:
            plaintext = decrypt(envelope)
        except (AuthenticationError, MalformedEnvelopeError) as e:
            logger.warning(
                "stored_key_decrypt_failed",
                user_id=str(user_id),
                service=service,
                error_type=type(e).__name__,
            )
            return Failed(InvalidStoredCredentialError(service))

        self.cache.set(user_id, service, plaintext)
        return ResolvedKey(api_key=plaintext, source="store", service=service)

    async def lookup(self, user_id: UUID, service: str) -> ResolvedKey | Failed | None:
        return await run_in_threadpool(self._read_and_decrypt, user_id, service)


class EnvironmentSource:
    def __init__(self, keys: Mapping[str, str | None]):
        self.keys = keys

    async def lookup(self, user_id: UUID, service: str) -> ResolvedKey | None:
        value = self.keys.get(service)
        if not value:
            return None
        return ResolvedKey(api_key=value, source="environment", service=service)


class CredentialResolver:
    """Walks the configured sources in order."""

    def __init__(self, sources: Sequence[CredentialSource]):
        self.sources = list(sources)

    @classmethod
    def default(
        cls,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        cache: CredentialCache,
        environment_keys: Mapping[str, str | None],
    ) -> "CredentialResolver":
        """Build the standard cache, then store, then environment chain."""
        return cls(
            [
                CacheSource(cache),
                StoreSource(session_factory, cache),
                EnvironmentSource(environment_keys),
            ]
        )

    async def resolve(self, user_id: UUID, service: str) -> ResolvedKey:
        """Resolve the key for (user_id, service).

        Raises:
            CredentialNotConfiguredError: If no source has a key.
            InvalidStoredCredentialError: If the stored key no longer decrypts.
            ResourceExhaustedError: If the DB pool timed out.
            ConfigurationError: If a stored key exists but ENCRYPTION_SECRET is unset.
        """
        for source in self.sources:
            result = await source.lookup(user_id, service)
            if result is None:
                continue
            if isinstance(result, Failed):
                raise result.error
            logger.debug(
                "api_key_resolved",
                user_id=str(user_id),
                service=service,
                source=result.source,
            )
            return result

        raise CredentialNotConfiguredError(service)
