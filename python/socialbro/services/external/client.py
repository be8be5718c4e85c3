"""Resilient client for third-party JSON APIs.

One entry point, ExternalApiClient.request(), serves both upstream styles:

- Gateway style (*.rapidapi.com): key in the X-RapidAPI-Key header, the
  host echoed in X-RapidAPI-Host, list params repeated, JSON body on POST.
- Platform style (www.googleapis.com): key in the `key` query parameter,
  list params comma-joined.

Each call resolves the user's key once, then makes up to max_attempts
attempts. A single attempt is classified as AttemptOk, AttemptRetryable, or
AttemptFatal and the retry loop only looks at that tag. Retryable outcomes
back off base_delay_ms * 2**attempt before the next attempt; there is no
sleep after the last one.

If the caller's cancel_event is set, the in-flight attempt or the pending
backoff is abandoned and RequestCancelledError is raised.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, TypeVar
from uuid import UUID

import httpx

from socialbro.logging import get_logger
from socialbro.services.external.errors import (
    ExternalServiceError,
    NetworkError,
    RequestCancelledError,
    TransientUpstreamError,
    classify_status,
)

if TYPE_CHECKING:
    from socialbro.services.credential_resolver import CredentialResolver

logger = get_logger(__name__)

T = TypeVar("T")

ParamValue = str | int | float | bool | Sequence[str] | None

GATEWAY_HOST_SUFFIX = ".rapidapi.com"
YOUTUBE_HOST = "www.googleapis.com"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_TIMEOUT_S = 30.0
CONNECT_TIMEOUT_S = 10.0


@dataclass
class ApiRequest:
    """An outbound request, before credentials are attached."""

    host: str
    endpoint: str
    params: Mapping[str, ParamValue] = field(default_factory=dict)
    method: Literal["GET", "POST"] = "GET"
    body: dict[str, Any] | None = None


@dataclass
class AttemptOk:
    payload: Any


@dataclass
class AttemptRetryable:
    error: ExternalServiceError


@dataclass
class AttemptFatal:
    error: ExternalServiceError


AttemptResult = AttemptOk | AttemptRetryable | AttemptFatal


def service_for_host(host: str) -> str:
    """Map an upstream host to the service whose key it needs.

    Raises:
        ValueError: If the host belongs to no known service.
    """
    host = host.lower()
    if host.endswith(GATEWAY_HOST_SUFFIX):
        return "rapidapi"
    if host == YOUTUBE_HOST:
        return "youtube"
    raise ValueError(f"No credential service configured for host: {host}")


def _format_scalar(value: str | int | float | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_params(
    params: Mapping[str, ParamValue],
    *,
    join_lists: bool,
) -> list[tuple[str, str]]:
    """Flatten request params into query pairs.

    None values are dropped. Lists are comma-joined when join_lists is set
    and repeated otherwise.
    """
    pairs: list[tuple[str, str]] = []
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            items = [_format_scalar(v) for v in value]
            if join_lists:
                pairs.append((name, ",".join(items)))
            else:
                pairs.extend((name, item) for item in items)
        else:
            pairs.append((name, _format_scalar(value)))
    return pairs


async def run_until_cancelled(
    awaitable: Awaitable[T],
    cancel_event: asyncio.Event | None,
    service: str,
) -> T:
    """Await `awaitable`, abandoning it if cancel_event is set first.

    Raises:
        RequestCancelledError: If cancel_event wins the race.
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError(service)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()
    raise RequestCancelledError(service)


class ExternalApiClient:
    """Authenticated, retrying JSON client shared by all upstream calls.

    The underlying httpx.AsyncClient is owned by the application lifespan;
    this class never closes it.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        resolver: "CredentialResolver",
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = http_client
        self.resolver = resolver
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.timeout_s = timeout_s
        self._sleep = sleep

    async def request(
        self,
        user_id: UUID,
        req: ApiRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """Perform an authenticated request and return the decoded JSON body.

        Raises:
            ValueError: If req.host maps to no known service.
            CredentialNotConfiguredError / InvalidStoredCredentialError:
                If no usable key could be resolved.
            UpstreamRequestError: On a non-retryable status (after one attempt).
            TransientUpstreamError: On a retryable status after the last attempt.
            NetworkError: On a transport failure after the last attempt.
            RequestCancelledError: If cancel_event is set before completion.
            json.JSONDecodeError: If a 2xx body is not valid JSON.
        """
        service = service_for_host(req.host)
        resolved = await run_until_cancelled(
            self.resolver.resolve(user_id, service), cancel_event, service
        )
        url, headers, params = self._build(service, req, resolved.api_key)

        attempt = 0
        while True:
            result = await run_until_cancelled(
                self._attempt(service, req, url, headers, params),
                cancel_event,
                service,
            )

            if isinstance(result, AttemptOk):
                return result.payload
            if isinstance(result, AttemptFatal):
                raise result.error
            if attempt + 1 >= self.max_attempts:
                break

            delay_ms = self.base_delay_ms * 2**attempt
            logger.warning(
                "external_request_retrying",
                service=service,
                host=req.host,
                endpoint=req.endpoint,
                error_type=type(result.error).__name__,
                status_code=getattr(result.error, "status_code", None),
                delay_ms=delay_ms,
                attempt=attempt + 1,
                max_attempts=self.max_attempts,
            )
            await run_until_cancelled(self._sleep(delay_ms / 1000), cancel_event, service)
            attempt += 1

        logger.error(
            "external_request_exhausted",
            service=service,
            host=req.host,
            endpoint=req.endpoint,
            error_type=type(result.error).__name__,
            attempts=self.max_attempts,
        )
        raise result.error

    def _build(
        self,
        service: str,
        req: ApiRequest,
        api_key: str,
    ) -> tuple[str, dict[str, str], list[tuple[str, str]]]:
        """Attach the key according to the service's convention."""
        url = f"https://{req.host}{req.endpoint}"

        if service == "youtube":
            params = [("key", api_key), *encode_params(req.params, join_lists=True)]
            return url, {}, params

        headers = {
            "X-RapidAPI-Key": api_key,
            "X-RapidAPI-Host": req.host,
        }
        return url, headers, encode_params(req.params, join_lists=False)

    async def _attempt(
        self,
        service: str,
        req: ApiRequest,
        url: str,
        headers: dict[str, str],
        params: list[tuple[str, str]],
    ) -> AttemptResult:
        """Make one HTTP call and classify the outcome."""
        try:
            response = await self._client.request(
                req.method,
                url,
                params=params,
                headers=headers,
                json=req.body if req.method == "POST" else None,
                timeout=httpx.Timeout(self.timeout_s, connect=CONNECT_TIMEOUT_S),
            )
        except httpx.TransportError as e:
            return AttemptRetryable(NetworkError(service, detail=type(e).__name__))

        if response.is_success:
            return AttemptOk(response.json())

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        error = classify_status(service, response.status_code, body)
        logger.warning(
            "external_request_failed",
            service=service,
            host=req.host,
            endpoint=req.endpoint,
            status_code=response.status_code,
            provider_message=error.provider_message,
        )

        if isinstance(error, TransientUpstreamError):
            return AttemptRetryable(error)
        return AttemptFatal(error)
