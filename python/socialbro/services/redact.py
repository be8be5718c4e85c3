"""Log guard utilities.

Never-log policy:
- API keys (plaintext, decrypted, or as stored envelopes)
- Bearer tokens and the admin secret
- Raw search queries
- Transcript text
- Provider response bodies

Allowed (with suffix):
- _chars, _length: length of text
- _sha256, _hash: hash of text
"""

import hashlib
import os

import structlog

FORBIDDEN_KEYS = frozenset(
    {
        "api_key",
        "key",
        "envelope",
        "bearer",
        "token",
        "secret",
        "password",
        "query",
        "transcript",
        "raw_body",
    }
)

REDACTED_SUFFIXES = ("_sha256", "_hash", "_length", "_chars")


def hash_text(value: str) -> str:
    """SHA-256 hex digest of a string, for log correlation."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _has_redacted_suffix(key: str) -> bool:
    return any(key.endswith(suffix) for suffix in REDACTED_SUFFIXES)


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Validate that no forbidden keys are present unless already redacted.

    Raises ValueError in local/test environments if a forbidden key is used
    without a redacted suffix. In staging/prod, logs a warning instead.

    Usage:
        logger.info("youtube_search_started", **safe_kv(
            user_id=str(user_id),
            query_chars=len(q),       # OK: _chars suffix
            # query=q,                # BLOCKED: forbidden key
        ))

    Args:
        _env: Override for SOCIALBRO_ENV (test-only). If None, reads from env.
        **kwargs: Keyword arguments to validate and return.

    Returns:
        The same kwargs dict, after validation.
    """
    violations = [
        key for key in kwargs if key in FORBIDDEN_KEYS and not _has_redacted_suffix(key)
    ]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        env = _env or os.environ.get("SOCIALBRO_ENV", "local")
        if env in ("local", "test"):
            raise ValueError(msg)
        structlog.get_logger("socialbro.services.redact").warning(
            "safe_kv_violation", forbidden_keys=violations
        )

    return kwargs
