"""Sealing of stored provider API keys.

Provider API keys are encrypted at rest with PyNaCl's SecretBox
(XSalsa20-Poly1305). Each key gets its own random 24-byte nonce, stored next
to the ciphertext as the key's initialization vector. The 32-byte master key
comes from MURMUR_KEY_ENCRYPTION_KEY (base64).

Security invariants:
- Never log plaintext keys or ciphertext; fingerprints (last 4 chars) only
- Master key is validated on first use
- Decryption fails if nonce, ciphertext or master key is wrong (authentication)
"""

import base64
import os
from functools import lru_cache

from nacl.exceptions import CryptoError as NaclCryptoError
from nacl.secret import SecretBox

from murmur.config import get_settings
from murmur.logging import get_logger

logger = get_logger(__name__)

NONCE_SIZE = SecretBox.NONCE_SIZE
MASTER_KEY_SIZE = SecretBox.KEY_SIZE


class CryptoError(Exception):
    """Raised when sealing or opening an API key fails."""

    pass


@lru_cache(maxsize=1)
def _get_master_key() -> bytes:
    """Load and validate the master key from settings.

    Raises:
        CryptoError: If the key is missing, invalid base64, or wrong size.
    """
    key_b64 = get_settings().murmur_key_encryption_key
    if not key_b64:
        raise CryptoError("MURMUR_KEY_ENCRYPTION_KEY is not set")

    try:
        key = base64.b64decode(key_b64, validate=True)
    except ValueError as e:
        raise CryptoError("MURMUR_KEY_ENCRYPTION_KEY is not valid base64") from e

    if len(key) != MASTER_KEY_SIZE:
        raise CryptoError(
            f"MURMUR_KEY_ENCRYPTION_KEY must be {MASTER_KEY_SIZE} bytes, got {len(key)} bytes"
        )

    return key


def clear_master_key_cache() -> None:
    """Forget the cached master key (tests, key rotation)."""
    _get_master_key.cache_clear()


def compute_key_fingerprint(api_key: str) -> str:
    """Last 4 characters of the key, safe for logs and display."""
    if len(api_key) < 4:
        return api_key
    return api_key[-4:]


def encrypt_api_key(plaintext: str) -> tuple[bytes, bytes, str]:
    """Seal an API key for storage.

    Args:
        plaintext: The plaintext API key.

    Returns:
        Tuple of (ciphertext, nonce, fingerprint).

    Raises:
        CryptoError: If the master key is not configured.
    """
    nonce = os.urandom(NONCE_SIZE)
    box = SecretBox(_get_master_key())
    # SecretBox.encrypt prefixes the nonce; the nonce is stored in its own column
    sealed = box.encrypt(plaintext.encode("utf-8"), nonce=nonce)
    return sealed.ciphertext, nonce, compute_key_fingerprint(plaintext)


def decrypt_api_key(ciphertext: bytes, nonce: bytes) -> str:
    """Open a sealed API key.

    Raises:
        CryptoError: On a wrong-size nonce, a wrong master key or tampered data.
    """
    if len(nonce) != NONCE_SIZE:
        raise CryptoError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

    box = SecretBox(_get_master_key())
    try:
        plaintext = box.decrypt(ciphertext, nonce=nonce)
    except NaclCryptoError as e:
        logger.warning("api_key_decryption_failed")
        raise CryptoError("Decryption failed") from e
    return plaintext.decode("utf-8")
