"""Tests for API key resolution.

Tests cover:
- Resolution order: cache, then stored key, then environment fallback
- Later sources are not consulted once an earlier one answers
- Cache population only after a successful decrypt
- A stored key that fails to decrypt does not fall back to the environment
- Missing master secret with a stored key
- Pool exhaustion
"""

from uuid import uuid4

import pytest
from sqlalchemy import exc as sa_exc

from socialbro.config import clear_settings_cache
from socialbro.db.models import ApiKey
from socialbro.services.credential_cache import CredentialCache
from socialbro.services.credential_resolver import (
    CacheSource,
    CredentialResolver,
    EnvironmentSource,
    StoreSource,
)
from socialbro.services.crypto import ConfigurationError
from socialbro.services.external.errors import (
    CredentialNotConfiguredError,
    InvalidStoredCredentialError,
    ResourceExhaustedError,
)
from tests.helpers import store_key


@pytest.fixture
def cache() -> CredentialCache:
    return CredentialCache()


def make_resolver(session_factory, cache, **env_keys) -> CredentialResolver:
    return CredentialResolver.default(session_factory, cache, env_keys)


class CountingSource:
    """Wraps a source and counts lookups that reach it."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    async def lookup(self, user_id, service):
        self.calls += 1
        return await self.inner.lookup(user_id, service)


class TestResolutionOrder:
    @pytest.mark.asyncio
    async def test_stored_key_wins_and_is_cached(
        self, session_factory, db_session, user_id, cache, store_calls
    ):
        store_key(db_session, user_id, "youtube", "USER-KEY-123")
        env = CountingSource(EnvironmentSource({"youtube": "ENV-KEY"}))
        resolver = CredentialResolver(
            [CacheSource(cache), StoreSource(session_factory, cache), env]
        )

        resolved = await resolver.resolve(user_id, "youtube")

        assert resolved.api_key == "USER-KEY-123"
        assert resolved.source == "store"
        assert resolved.service == "youtube"
        assert cache.get(user_id, "youtube") == "USER-KEY-123"
        assert store_calls == {"find_credential": 1, "decrypt": 1}
        assert env.calls == 0

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store_and_environment(
        self, session_factory, user_id, cache, store_calls
    ):
        cache.set(user_id, "youtube", "CACHED-KEY")
        store = CountingSource(StoreSource(session_factory, cache))
        env = CountingSource(EnvironmentSource({"youtube": "ENV-KEY"}))
        resolver = CredentialResolver([CacheSource(cache), store, env])

        resolved = await resolver.resolve(user_id, "youtube")

        assert resolved.api_key == "CACHED-KEY"
        assert resolved.source == "cache"
        assert store.calls == 0
        assert env.calls == 0
        assert store_calls == {"find_credential": 0, "decrypt": 0}

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(
        self, session_factory, db_session, user_id, cache, store_calls
    ):
        store_key(db_session, user_id, "youtube", "USER-KEY-123")
        resolver = make_resolver(session_factory, cache)

        await resolver.resolve(user_id, "youtube")
        resolved = await resolver.resolve(user_id, "youtube")

        assert resolved.source == "cache"
        assert resolved.api_key == "USER-KEY-123"
        assert store_calls == {"find_credential": 1, "decrypt": 1}

    @pytest.mark.asyncio
    async def test_environment_fallback_is_not_cached(
        self, session_factory, user_id, cache, store_calls
    ):
        resolver = make_resolver(session_factory, cache, youtube="ENV123")

        resolved = await resolver.resolve(user_id, "youtube")

        assert resolved.api_key == "ENV123"
        assert resolved.source == "environment"
        assert cache.size == 0
        assert store_calls["decrypt"] == 0

    @pytest.mark.asyncio
    async def test_nothing_configured(self, session_factory, user_id, cache):
        resolver = make_resolver(session_factory, cache, youtube=None, rapidapi="")

        with pytest.raises(CredentialNotConfiguredError) as exc_info:
            await resolver.resolve(user_id, "rapidapi")

        assert exc_info.value.service == "rapidapi"
        assert exc_info.value.message == "Add RapidAPI API key in Settings"

    @pytest.mark.asyncio
    async def test_other_users_key_is_not_used(self, session_factory, db_session, user_id, cache):
        store_key(db_session, user_id, "youtube", "ALICE-KEY")
        resolver = make_resolver(session_factory, cache)

        with pytest.raises(CredentialNotConfiguredError):
            await resolver.resolve(uuid4(), "youtube")


class TestUnusableStoredKey:
    @pytest.mark.asyncio
    async def test_corrupt_envelope_does_not_fall_back(
        self, session_factory, db_session, user_id, cache
    ):
        db_session.add(ApiKey(user_id=user_id, service="youtube", key="not-an-envelope"))
        db_session.commit()
        resolver = make_resolver(session_factory, cache, youtube="ENV-KEY")

        with pytest.raises(InvalidStoredCredentialError) as exc_info:
            await resolver.resolve(user_id, "youtube")

        assert "re-enter" in exc_info.value.message
        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_rotated_master_secret_is_invalid_key(
        self, session_factory, db_session, user_id, cache, monkeypatch
    ):
        store_key(db_session, user_id, "rapidapi", "RAPID-KEY-1")
        monkeypatch.setenv("ENCRYPTION_SECRET", "rotated-master-secret")
        clear_settings_cache()
        resolver = make_resolver(session_factory, cache)

        with pytest.raises(InvalidStoredCredentialError):
            await resolver.resolve(user_id, "rapidapi")

    @pytest.mark.asyncio
    async def test_missing_master_secret_is_configuration_error(
        self, session_factory, db_session, user_id, cache, monkeypatch
    ):
        store_key(db_session, user_id, "youtube", "USER-KEY-123")
        monkeypatch.delenv("ENCRYPTION_SECRET")
        clear_settings_cache()
        resolver = make_resolver(session_factory, cache)

        with pytest.raises(ConfigurationError):
            await resolver.resolve(user_id, "youtube")


class TestSources:
    @pytest.mark.asyncio
    async def test_pool_timeout_is_resource_exhausted(self, cache):
        class TimeoutSession:
            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def scalars(self, stmt):
                raise sa_exc.TimeoutError("QueuePool limit reached")

        source = StoreSource(lambda: TimeoutSession(), cache)

        with pytest.raises(ResourceExhaustedError):
            await source.lookup(uuid4(), "youtube")

    @pytest.mark.asyncio
    async def test_custom_source_order(self, cache):
        user_id = uuid4()
        cache.set(user_id, "youtube", "CACHED")
        resolver = CredentialResolver([EnvironmentSource({"youtube": "ENV"}), CacheSource(cache)])

        resolved = await resolver.resolve(user_id, "youtube")

        assert resolved.api_key == "ENV"
        assert resolved.source == "environment"
