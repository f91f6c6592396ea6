"""Tests for sealing of stored provider API keys.

- Keys are sealed with SecretBox under MURMUR_KEY_ENCRYPTION_KEY
- The nonce is 24 bytes, random per key, and stored separately
- Opening fails with a wrong nonce, a wrong master key or tampered data
"""

import base64

import pytest

from murmur.config import clear_settings_cache
from murmur.services.crypto import (
    MASTER_KEY_SIZE,
    NONCE_SIZE,
    CryptoError,
    clear_master_key_cache,
    compute_key_fingerprint,
    decrypt_api_key,
    encrypt_api_key,
)

TEST_KEY = b"test_master_key_for_encryption!!"


def _use_master_key(monkeypatch, value: str | None) -> None:
    if value is None:
        monkeypatch.delenv("MURMUR_KEY_ENCRYPTION_KEY", raising=False)
    else:
        monkeypatch.setenv("MURMUR_KEY_ENCRYPTION_KEY", value)
    clear_settings_cache()
    clear_master_key_cache()


@pytest.fixture(autouse=True)
def setup_test_master_key(monkeypatch):
    """Deterministic master key for every test in this module."""
    assert len(TEST_KEY) == MASTER_KEY_SIZE
    _use_master_key(monkeypatch, base64.b64encode(TEST_KEY).decode("ascii"))


class TestMasterKey:
    """Master key loading and validation."""

    def test_missing_key_raises_error(self, monkeypatch):
        _use_master_key(monkeypatch, None)

        with pytest.raises(CryptoError) as exc_info:
            encrypt_api_key("sk-abcdefgh")

        assert "not set" in str(exc_info.value)

    def test_invalid_base64_raises_error(self, monkeypatch):
        _use_master_key(monkeypatch, "not-valid-base64!!!")

        with pytest.raises(CryptoError) as exc_info:
            encrypt_api_key("sk-abcdefgh")

        assert "not valid base64" in str(exc_info.value)

    def test_wrong_key_size_raises_error(self, monkeypatch):
        _use_master_key(monkeypatch, base64.b64encode(b"short").decode("ascii"))

        with pytest.raises(CryptoError) as exc_info:
            encrypt_api_key("sk-abcdefgh")

        assert f"must be {MASTER_KEY_SIZE} bytes" in str(exc_info.value)


class TestSealing:
    """encrypt_api_key / decrypt_api_key behaviour."""

    def test_roundtrip_returns_plaintext(self):
        ciphertext, nonce, fingerprint = encrypt_api_key("sk-live-1234567890abcd")

        assert decrypt_api_key(ciphertext, nonce) == "sk-live-1234567890abcd"
        assert fingerprint == "abcd"

    def test_nonce_is_random_and_sized(self):
        c1, n1, _ = encrypt_api_key("same-key-value")
        c2, n2, _ = encrypt_api_key("same-key-value")

        assert len(n1) == NONCE_SIZE
        assert n1 != n2
        assert c1 != c2

    def test_ciphertext_does_not_contain_plaintext(self):
        ciphertext, _, _ = encrypt_api_key("sk-very-secret-value")

        assert b"sk-very-secret-value" not in ciphertext

    def test_wrong_nonce_fails(self):
        ciphertext, _, _ = encrypt_api_key("sk-abcdefgh")
        _, other_nonce, _ = encrypt_api_key("sk-other")

        with pytest.raises(CryptoError):
            decrypt_api_key(ciphertext, other_nonce)

    def test_wrong_nonce_size_fails(self):
        ciphertext, _, _ = encrypt_api_key("sk-abcdefgh")

        with pytest.raises(CryptoError) as exc_info:
            decrypt_api_key(ciphertext, b"short")

        assert f"{NONCE_SIZE} bytes" in str(exc_info.value)

    def test_tampered_ciphertext_fails(self):
        ciphertext, nonce, _ = encrypt_api_key("sk-abcdefgh")
        tampered = bytes([ciphertext[0] ^ 0xFF]) + ciphertext[1:]

        with pytest.raises(CryptoError):
            decrypt_api_key(tampered, nonce)

    def test_rotated_master_key_cannot_open_old_keys(self, monkeypatch):
        ciphertext, nonce, _ = encrypt_api_key("sk-abcdefgh")
        _use_master_key(monkeypatch, base64.b64encode(b"x" * MASTER_KEY_SIZE).decode("ascii"))

        with pytest.raises(CryptoError):
            decrypt_api_key(ciphertext, nonce)


class TestFingerprint:
    def test_last_four_characters(self):
        assert compute_key_fingerprint("sk-abcdef1234") == "1234"

    def test_short_key_is_returned_whole(self):
        assert compute_key_fingerprint("abc") == "abc"
