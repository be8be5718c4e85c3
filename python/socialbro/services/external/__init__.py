"""Outbound third-party API layer.

Provides one resilient client for every upstream (YouTube Data API and the
RapidAPI gateway), the classified error hierarchy it raises, and the
provider-specific calls and normalizers built on top of it.

Usage:
    from socialbro.services.external import ApiRequest, ExternalApiClient

    client = ExternalApiClient(httpx_client, resolver)
    payload = await client.request(
        user_id,
        ApiRequest(host="www.googleapis.com", endpoint="/youtube/v3/videos", params={...}),
    )

- Keys are resolved once per call, never logged
- Retries only on transient statuses and transport failures
- Provider error bodies are logged, never returned to clients
"""

from socialbro.services.external.client import (
    ApiRequest,
    AttemptFatal,
    AttemptOk,
    AttemptRetryable,
    ExternalApiClient,
    service_for_host,
)
from socialbro.services.external.errors import (
    CredentialError,
    CredentialNotConfiguredError,
    ExternalServiceError,
    InvalidStoredCredentialError,
    NetworkError,
    RequestCancelledError,
    ResourceExhaustedError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamRequestError,
)

__all__ = [
    "ApiRequest",
    "AttemptFatal",
    "AttemptOk",
    "AttemptRetryable",
    "ExternalApiClient",
    "service_for_host",
    "CredentialError",
    "CredentialNotConfiguredError",
    "ExternalServiceError",
    "InvalidStoredCredentialError",
    "NetworkError",
    "RequestCancelledError",
    "ResourceExhaustedError",
    "TransientUpstreamError",
    "UpstreamError",
    "UpstreamRequestError",
]
