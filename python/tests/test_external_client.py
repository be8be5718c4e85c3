"""Tests for the retrying outbound API client.

Outbound HTTP is mocked with respx. Backoff sleeps are recorded instead
of awaited.

Tests cover:
- Credential placement for platform (query param) and gateway (headers) styles
- Retry with exponential backoff on retryable statuses
- No retry on non-retryable statuses
- Transport failures
- Cancellation
"""

import asyncio
import json
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
import respx

from socialbro.services.credential_cache import CredentialCache
from socialbro.services.credential_resolver import CredentialResolver, EnvironmentSource
from socialbro.services.external.client import (
    ApiRequest,
    ExternalApiClient,
    encode_params,
    run_until_cancelled,
    service_for_host,
)
from socialbro.services.external.errors import (
    CredentialNotConfiguredError,
    NetworkError,
    RequestCancelledError,
    TransientUpstreamError,
    UpstreamRequestError,
)

YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
RAPID_HOST = "tiktok-scraper7.p.rapidapi.com"


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


def env_resolver(**keys) -> CredentialResolver:
    return CredentialResolver([EnvironmentSource(keys)])


def make_client(http_client, sleeps, resolver=None, **kwargs) -> ExternalApiClient:
    return ExternalApiClient(
        http_client,
        resolver or env_resolver(youtube="YT-KEY", rapidapi="RAPID-KEY"),
        sleep=sleeps,
        **kwargs,
    )


def youtube_request(**params) -> ApiRequest:
    return ApiRequest(
        host="www.googleapis.com",
        endpoint="/youtube/v3/search",
        params=params or {"q": "cats"},
    )


class TestHelpers:
    def test_service_for_host(self):
        assert service_for_host("www.googleapis.com") == "youtube"
        assert service_for_host(RAPID_HOST) == "rapidapi"
        assert service_for_host("Foo.RapidAPI.com") == "rapidapi"

    def test_unknown_host(self):
        with pytest.raises(ValueError):
            service_for_host("api.example.com")

    def test_encode_params_join_and_repeat(self):
        params = {"part": ["snippet", "statistics"], "n": 5, "flag": True, "skip": None}

        assert encode_params(params, join_lists=True) == [
            ("part", "snippet,statistics"),
            ("n", "5"),
            ("flag", "true"),
        ]
        assert encode_params(params, join_lists=False) == [
            ("part", "snippet"),
            ("part", "statistics"),
            ("n", "5"),
            ("flag", "true"),
        ]


class TestCredentialPlacement:
    @pytest.mark.asyncio
    @respx.mock
    async def test_youtube_key_goes_in_query(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(
            return_value=httpx.Response(200, json={"items": []})
        )
        client = make_client(http_client, sleeps)

        payload = await client.request(
            uuid4(), youtube_request(part=["snippet", "statistics"], q="cats")
        )

        assert payload == {"items": []}
        request = route.calls.last.request
        assert request.url.params["key"] == "YT-KEY"
        assert request.url.params["part"] == "snippet,statistics"
        assert request.url.params["q"] == "cats"
        assert "X-RapidAPI-Key" not in request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_gateway_key_goes_in_headers(self, http_client, sleeps):
        route = respx.get(f"https://{RAPID_HOST}/feed/search").mock(
            return_value=httpx.Response(200, json={"data": {}})
        )
        client = make_client(http_client, sleeps)

        await client.request(
            uuid4(),
            ApiRequest(host=RAPID_HOST, endpoint="/feed/search", params={"tag": ["a", "b"]}),
        )

        request = route.calls.last.request
        assert request.headers["X-RapidAPI-Key"] == "RAPID-KEY"
        assert request.headers["X-RapidAPI-Host"] == RAPID_HOST
        assert request.url.params.get_list("tag") == ["a", "b"]
        assert "key" not in request.url.params

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_sends_json_body(self, http_client, sleeps):
        route = respx.post(f"https://{RAPID_HOST}/batch").mock(
            return_value=httpx.Response(200, json={"ok": True})
        )
        client = make_client(http_client, sleeps)

        await client.request(
            uuid4(),
            ApiRequest(host=RAPID_HOST, endpoint="/batch", method="POST", body={"ids": [1, 2]}),
        )

        assert json.loads(route.calls.last.request.content) == {"ids": [1, 2]}

    @pytest.mark.asyncio
    @respx.mock
    async def test_environment_fallback_key_is_sent_and_not_cached(
        self, http_client, sleeps, session_factory, store_calls
    ):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(
            return_value=httpx.Response(200, json={"items": []})
        )
        cache = CredentialCache()
        resolver = CredentialResolver.default(session_factory, cache, {"youtube": "ENV123"})
        client = make_client(http_client, sleeps, resolver=resolver)

        await client.request(uuid4(), youtube_request())

        assert route.calls.last.request.url.params["key"] == "ENV123"
        assert cache.size == 0
        assert store_calls["decrypt"] == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_makes_no_http_call(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL)
        client = make_client(http_client, sleeps, resolver=env_resolver())

        with pytest.raises(CredentialNotConfiguredError):
            await client.request(uuid4(), youtube_request())

        assert not route.called


class TestRetry:
    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_then_succeeds_with_backoff(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.Response(503),
                httpx.Response(200, json={"items": [{"id": "x"}]}),
            ]
        )
        client = make_client(http_client, sleeps, max_attempts=3, base_delay_ms=1000)

        payload = await client.request(uuid4(), youtube_request())

        assert payload == {"items": [{"id": "x"}]}
        assert route.call_count == 3
        assert sleeps.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_exhausted_retries_raise_last_error(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(return_value=httpx.Response(503))
        client = make_client(http_client, sleeps, max_attempts=3, base_delay_ms=1000)

        with pytest.raises(TransientUpstreamError) as exc_info:
            await client.request(uuid4(), youtube_request())

        assert exc_info.value.status_code == 503
        assert route.call_count == 3
        # No sleep after the final attempt
        assert sleeps.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_from_final_attempt_is_raised(self, http_client, sleeps):
        respx.get(YOUTUBE_SEARCH_URL).mock(
            side_effect=[httpx.Response(503), httpx.Response(502), httpx.Response(504)]
        )
        client = make_client(http_client, sleeps, max_attempts=3)

        with pytest.raises(TransientUpstreamError) as exc_info:
            await client.request(uuid4(), youtube_request())

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_retryable_status_fails_immediately(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(
            return_value=httpx.Response(
                400,
                json={
                    "error": {
                        "message": "Invalid value",
                        "errors": [{"reason": "invalidParameter"}],
                    }
                },
            )
        )
        client = make_client(http_client, sleeps)

        with pytest.raises(UpstreamRequestError) as exc_info:
            await client.request(uuid4(), youtube_request())

        assert route.call_count == 1
        assert sleeps.calls == []
        assert exc_info.value.status_code == 400
        assert exc_info.value.provider_message == "Invalid value (invalidParameter)"

    @pytest.mark.asyncio
    @respx.mock
    async def test_auth_failure_is_not_retried(self, http_client, sleeps):
        route = respx.get(f"https://{RAPID_HOST}/feed/search").mock(
            return_value=httpx.Response(403, json={"message": "You are not subscribed"})
        )
        client = make_client(http_client, sleeps)

        with pytest.raises(UpstreamRequestError) as exc_info:
            await client.request(uuid4(), ApiRequest(host=RAPID_HOST, endpoint="/feed/search"))

        assert route.call_count == 1
        assert exc_info.value.is_auth_failure
        assert exc_info.value.provider_message == "You are not subscribed"

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_is_retried(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(
            side_effect=[httpx.Response(429), httpx.Response(200, json={})]
        )
        client = make_client(http_client, sleeps, base_delay_ms=10)

        await client.request(uuid4(), youtube_request())

        assert route.call_count == 2
        assert sleeps.calls == [0.01]

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_becomes_network_error(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(side_effect=httpx.ConnectError("refused"))
        client = make_client(http_client, sleeps, max_attempts=2)

        with pytest.raises(NetworkError):
            await client.request(uuid4(), youtube_request())

        assert route.call_count == 2
        assert sleeps.calls == [1.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_single_attempt(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(return_value=httpx.Response(500))
        client = make_client(http_client, sleeps, max_attempts=1)

        with pytest.raises(TransientUpstreamError):
            await client.request(uuid4(), youtube_request())

        assert route.call_count == 1
        assert sleeps.calls == []

    def test_max_attempts_must_be_positive(self, sleeps):
        with pytest.raises(ValueError):
            ExternalApiClient(httpx.AsyncClient(), env_resolver(), max_attempts=0)


class TestCancellation:
    @pytest.mark.asyncio
    @respx.mock
    async def test_already_cancelled_makes_no_call(self, http_client, sleeps):
        route = respx.get(YOUTUBE_SEARCH_URL)
        client = make_client(http_client, sleeps)
        event = asyncio.Event()
        event.set()

        with pytest.raises(RequestCancelledError):
            await client.request(uuid4(), youtube_request(), cancel_event=event)

        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_cancel_during_backoff_stops_retrying(self, http_client):
        route = respx.get(YOUTUBE_SEARCH_URL).mock(return_value=httpx.Response(503))
        event = asyncio.Event()

        async def cancelling_sleep(seconds: float) -> None:
            event.set()
            await asyncio.sleep(10)

        client = ExternalApiClient(
            http_client,
            env_resolver(youtube="YT-KEY"),
            max_attempts=3,
            sleep=cancelling_sleep,
        )

        with pytest.raises(RequestCancelledError):
            await client.request(uuid4(), youtube_request(), cancel_event=event)

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_run_until_cancelled_returns_result(self):
        async def work():
            return 42

        assert await run_until_cancelled(work(), asyncio.Event(), "youtube") == 42
        assert await run_until_cancelled(work(), None, "youtube") == 42

    @pytest.mark.asyncio
    async def test_run_until_cancelled_abandons_slow_work(self):
        event = asyncio.Event()
        finished = False

        async def slow():
            nonlocal finished
            await asyncio.sleep(10)
            finished = True

        asyncio.get_running_loop().call_later(0.01, event.set)

        with pytest.raises(RequestCancelledError):
            await run_until_cancelled(slow(), event, "rapidapi")

        assert finished is False
