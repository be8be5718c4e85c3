"""Classified errors for outbound third-party API calls.

Every failure that can leave the credential resolver or the external API
client is one of these classes. Classification happens exactly once, where
the failure is observed; the HTTP layer only maps class to status code.

Provider error bodies are carried on the error for logging but are never
shown to end users.
"""

from typing import Any

# Services that accept a credential, with their display names
SERVICE_DISPLAY_NAMES: dict[str, str] = {
    "youtube": "YouTube",
    "rapidapi": "RapidAPI",
}

# Statuses that are retried with backoff
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def display_name(service: str) -> str:
    return SERVICE_DISPLAY_NAMES.get(service, service)


class ExternalServiceError(Exception):
    """Base class for errors raised while calling a third-party service.

    Attributes:
        service: Service name ("youtube" or "rapidapi").
        message: Safe, user-facing message.
    """

    def __init__(self, service: str, message: str):
        self.service = service
        self.message = message
        super().__init__(message)


class CredentialError(ExternalServiceError):
    """Base class for credential resolution failures."""

    pass


class CredentialNotConfiguredError(CredentialError):
    """No stored key and no process-wide fallback for the service."""

    def __init__(self, service: str):
        super().__init__(service, f"Add {display_name(service)} API key in Settings")


class InvalidStoredCredentialError(CredentialError):
    """A stored key exists but no longer decrypts."""

    def __init__(self, service: str):
        super().__init__(
            service,
            f"Invalid {display_name(service)} API key. Please re-enter it in Settings.",
        )


class UpstreamError(ExternalServiceError):
    """The provider answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the provider.
        provider_message: Message extracted from the provider body, for logs only.
    """

    def __init__(
        self,
        service: str,
        status_code: int,
        provider_message: str | None = None,
    ):
        self.status_code = status_code
        self.provider_message = provider_message
        super().__init__(service, f"{display_name(service)} request failed ({status_code})")

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class TransientUpstreamError(UpstreamError):
    """Retryable upstream status (408, 429, 5xx gateway errors)."""

    pass


class UpstreamRequestError(UpstreamError):
    """Non-retryable upstream status (bad request, auth, not found)."""

    pass


class NetworkError(ExternalServiceError):
    """Transport failure with no response, after exhausting retries."""

    def __init__(self, service: str, detail: str | None = None):
        self.detail = detail
        super().__init__(service, f"Could not reach {display_name(service)}")


class ResourceExhaustedError(ExternalServiceError):
    """A bounded local resource (the DB pool) could not be acquired in time."""

    def __init__(self, service: str):
        super().__init__(service, "Server is busy. Please try again.")


class RequestCancelledError(ExternalServiceError):
    """The caller abandoned the request before it completed."""

    def __init__(self, service: str):
        super().__init__(service, "Request cancelled")


def classify_status(service: str, status_code: int, body: Any) -> UpstreamError:
    """Build the classified error for a non-2xx provider response."""
    provider_message = extract_provider_message(service, body)
    if status_code in RETRYABLE_STATUS_CODES:
        return TransientUpstreamError(service, status_code, provider_message)
    return UpstreamRequestError(service, status_code, provider_message)


def extract_provider_message(service: str, body: Any) -> str | None:
    """Pull a human-readable message out of a provider error body.

    RapidAPI gateways answer {"message": "..."}; Google APIs answer
    {"error": {"message": "...", "errors": [{"reason": "..."}]}}.
    """
    if isinstance(body, str):
        return body[:500] or None
    if not isinstance(body, dict):
        return None

    if service == "youtube":
        error = body.get("error")
        if not isinstance(error, dict):
            return None
        message = error.get("message")
        errors = error.get("errors")
        reason = None
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            reason = errors[0].get("reason")
        if message and reason:
            return f"{message} ({reason})"
        return message or reason

    message = body.get("message")
    return message if isinstance(message, str) else None
