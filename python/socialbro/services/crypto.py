"""Cryptographic helpers for stored API key encryption.

Implements AES-256-GCM authenticated encryption for per-user API keys
using the `cryptography` package.

- Master secret is ENCRYPTION_SECRET, read through Settings (environment or .env)
- Encryption key is derived with scrypt (N=2^14, r=8, p=1, 32 bytes)
- Salt is the first 16 bytes of SHA-256(master secret): deterministic per
  secret, so stored envelopes stay decryptable across restarts without
  storing the salt
- A fresh 16-byte IV is generated per encryption
- Envelope format: "<ivHex>:<authTagHex>:<ciphertextHex>"

The parameters match Node's scryptSync defaults and aes-256-gcm with a
16-byte IV, so envelopes written by the previous deployment decrypt as-is.

Security invariants:
- Never log plaintext keys or envelopes
- Same plaintext encrypted twice yields different envelopes
- Decryption fails if the tag does not verify (tampering, wrong or rotated secret)
"""

import hashlib
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from socialbro.config import get_settings
from socialbro.logging import get_logger

logger = get_logger(__name__)

MASTER_SECRET_ENV = "ENCRYPTION_SECRET"

KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16
SALT_SIZE = 16

# scrypt cost parameters
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

# Never appears in hex output
ENVELOPE_DELIMITER = ":"

MASK = "••••••••"


class CryptoError(Exception):
    """Raised when cryptographic operations fail."""

    pass


class ConfigurationError(CryptoError):
    """No master secret is configured."""

    pass


class MalformedEnvelopeError(CryptoError):
    """Envelope is not three non-empty hex parts of the expected sizes."""

    pass


class AuthenticationError(CryptoError):
    """Authentication tag did not verify."""

    pass


def require_master_secret() -> str:
    """Load the master secret from settings.

    Raises:
        ConfigurationError: If ENCRYPTION_SECRET is missing or empty.
    """
    secret = get_settings().encryption_secret
    if not secret:
        raise ConfigurationError(
            f"{MASTER_SECRET_ENV} is required. "
            "Generate one with: openssl rand -base64 32"
        )
    return secret


def derive_salt(master_secret: str) -> bytes:
    """Return the deterministic salt for a master secret."""
    return hashlib.sha256(master_secret.encode("utf-8")).digest()[:SALT_SIZE]


@lru_cache(maxsize=8)
def _derive_key_cached(master_secret: str) -> bytes:
    kdf = Scrypt(
        salt=derive_salt(master_secret),
        length=KEY_SIZE,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(master_secret.encode("utf-8"))


def derive_key(master_secret: str | None) -> bytes:
    """Derive the 32-byte encryption key for a master secret.

    scrypt is deliberately slow, so derived keys are memoized per secret.

    Args:
        master_secret: The operator-supplied master secret.

    Returns:
        The derived key.

    Raises:
        ConfigurationError: If no master secret is given.
    """
    if not master_secret:
        raise ConfigurationError("No master secret configured")
    return _derive_key_cached(master_secret)


def encrypt(plaintext: str) -> str:
    """Encrypt a secret string into an envelope.

    Args:
        plaintext: The secret to encrypt. Must be non-empty.

    Returns:
        "<ivHex>:<authTagHex>:<ciphertextHex>"

    Raises:
        ConfigurationError: If the master secret is not configured.
        ValueError: If plaintext is empty.
    """
    if not plaintext:
        raise ValueError("Cannot encrypt an empty secret")

    key = derive_key(require_master_secret())
    iv = os.urandom(IV_SIZE)

    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    return ENVELOPE_DELIMITER.join((iv.hex(), tag.hex(), ciphertext.hex()))


def _split_envelope(envelope: str) -> tuple[bytes, bytes, bytes]:
    parts = envelope.split(ENVELOPE_DELIMITER)
    if len(parts) != 3 or not all(parts):
        raise MalformedEnvelopeError("Invalid encrypted text format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError as e:
        raise MalformedEnvelopeError("Envelope parts must be hex encoded") from e

    if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
        raise MalformedEnvelopeError("Envelope IV or tag has the wrong size")

    return iv, tag, ciphertext


def decrypt(envelope: str) -> str:
    """Decrypt an envelope produced by encrypt().

    Raises:
        MalformedEnvelopeError: If any envelope part is missing or not hex.
        AuthenticationError: If the tag does not verify.
        ConfigurationError: If the master secret is not configured.
    """
    iv, tag, ciphertext = _split_envelope(envelope)
    key = derive_key(require_master_secret())

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.warning("decryption_failed", reason="auth_tag_mismatch")
        raise AuthenticationError("Encrypted secret failed authentication") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedEnvelopeError("Decrypted secret is not valid UTF-8") from e


def mask_secret(plaintext: str) -> str:
    """Mask a secret for display. Not reversible.

    Secrets of 8 characters or fewer are fully masked; longer ones keep
    the first and last 4 characters.
    """
    if len(plaintext) <= 8:
        return MASK
    return plaintext[:4] + MASK + plaintext[-4:]
