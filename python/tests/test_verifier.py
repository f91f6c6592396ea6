"""Tests for JwksTokenVerifier.

The JWKS client is patched; no network calls are made.
"""

import time
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import PyJWKClientError

from murmur.auth.verifier import JwksTokenVerifier
from murmur.errors import ApiError, ApiErrorCode
from tests.helpers import create_test_user_id

ISSUER = "https://auth.murmur.test"
AUDIENCE = "murmur-api"


@pytest.fixture(scope="module")
def rsa_keypair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


@pytest.fixture
def verifier():
    return JwksTokenVerifier(
        jwks_url=f"{ISSUER}/.well-known/jwks.json",
        issuer=ISSUER + "/",
        audiences=[AUDIENCE],
    )


def mint(private_key, sub: str, /, **overrides) -> str:
    now = int(time.time())
    payload = {"sub": sub, "iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + 3600}
    payload.update(overrides)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return jwt.encode(payload, pem, algorithm="RS256", headers={"kid": "key-1"})


def jwks_client_returning(public_key, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.get_signing_key_from_jwt.side_effect = side_effect
    else:
        client.get_signing_key_from_jwt.return_value = MagicMock(key=public_key)
    return client


class TestJwksTokenVerifier:
    def test_issuer_trailing_slash_normalized(self, verifier):
        assert verifier.issuer == ISSUER

    def test_valid_token(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        user_id = create_test_user_id()
        token = mint(private_key, user_id)

        with patch.object(
            verifier, "_get_jwks_client", return_value=jwks_client_returning(public_key)
        ):
            claims = verifier.verify(token)

        assert claims["sub"] == user_id
        assert claims["aud"] == AUDIENCE

    def test_invalid_signature(self, verifier, rsa_keypair):
        _, public_key = rsa_keypair
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = mint(other_key, create_test_user_id())

        with patch.object(
            verifier, "_get_jwks_client", return_value=jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert exc_info.value.message == "Invalid token signature"

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"exp": int(time.time()) - 3600}, "Token expired"),
            ({"iss": "https://elsewhere.test"}, "Invalid token issuer"),
            ({"aud": "other-api"}, "Invalid token audience"),
            ({"sub": ""}, "Invalid token: missing sub"),
        ],
    )
    def test_rejected_claims(self, verifier, rsa_keypair, overrides, message):
        private_key, public_key = rsa_keypair
        token = mint(private_key, create_test_user_id(), **overrides)

        with patch.object(
            verifier, "_get_jwks_client", return_value=jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert exc_info.value.message == message

    def test_clock_skew_accepted(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = mint(private_key, create_test_user_id(), exp=int(time.time()) - 30)

        with patch.object(
            verifier, "_get_jwks_client", return_value=jwks_client_returning(public_key)
        ):
            assert verifier.verify(token)["iss"] == ISSUER

    def test_kid_miss_refreshes_once(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        user_id = create_test_user_id()
        token = mint(private_key, user_id)
        stale = jwks_client_returning(
            public_key, side_effect=PyJWKClientError("Unable to find a signing key")
        )
        fresh = jwks_client_returning(public_key)

        with patch.object(verifier, "_get_jwks_client", side_effect=[stale, fresh]) as get_client:
            claims = verifier.verify(token)

        assert claims["sub"] == user_id
        assert get_client.call_args_list[1].kwargs == {"refresh": True}

    def test_kid_missing_after_refresh(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = mint(private_key, create_test_user_id())
        missing = jwks_client_returning(
            public_key, side_effect=PyJWKClientError("Unable to find a signing key")
        )

        with patch.object(verifier, "_get_jwks_client", return_value=missing):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert "signing key" in exc_info.value.message

    def test_jwks_unreachable(self, verifier, rsa_keypair):
        _, public_key = rsa_keypair
        broken = jwks_client_returning(
            public_key, side_effect=PyJWKClientError("Fail to fetch data from the url")
        )

        with patch.object(verifier, "_get_jwks_client", return_value=broken):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify("some.fake.token")

        assert exc_info.value.code == ApiErrorCode.E_AUTH_UNAVAILABLE
