"""Bearer token verification.

TokenVerifier is the seam AuthMiddleware depends on. JwksTokenVerifier is
the production implementation: it fetches signing keys from the identity
provider's JWKS endpoint (cached, refreshed once on an unknown kid) and
checks the standard claims. Tokens are only verified here, never issued.
"""

import threading
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from murmur.errors import ApiError, ApiErrorCode
from murmur.logging import get_logger

logger = get_logger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60

ALGORITHMS = ["RS256", "ES256"]

# Most specific first: every entry is an InvalidTokenError subclass
_REJECTIONS: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
    (InvalidTokenError, "invalid_token", "Invalid token"),
)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Verify token and return its claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): Keys could not be fetched.
        """
        ...


def _rejection(exc: InvalidTokenError) -> ApiError:
    for exc_type, reason, message in _REJECTIONS:
        if isinstance(exc, exc_type):
            break
    logger.warning("auth_failure", reason=reason)
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


class JwksTokenVerifier:
    """Verifies JWTs against keys published at a JWKS URL.

    Checks: signature (RS256 or ES256), exp with CLOCK_SKEW_SECONDS leeway,
    iss equal to the configured issuer (trailing slash ignored), aud in the
    configured audience list, and a non-empty sub.
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _get_jwks_client(self, refresh: bool = False) -> PyJWKClient:
        """Return the shared JWKS client; refresh=True starts with an empty key cache."""
        with self._jwks_lock:
            if self._jwks_client is None or refresh:
                self._jwks_client = PyJWKClient(
                    self.jwks_url, cache_keys=True, lifespan=self.cache_ttl
                )
            return self._jwks_client

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._get_signing_key(token)
        except InvalidTokenError as e:
            raise _rejection(e) from e
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="jwks_unavailable", error=str(e))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from e

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=ALGORITHMS,
                audience=self.audiences,
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iss", "sub"], "verify_aud": True},
            )
        except InvalidTokenError as e:
            raise _rejection(e) from e

        if not claims.get("sub"):
            logger.warning("auth_failure", reason="missing_sub")
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: missing sub")
        return claims

    def _get_signing_key(self, token: str) -> Any:
        """Look up the token's signing key, refetching the JWKS once on a kid miss.

        Raises:
            PyJWKClientError: The JWKS endpoint could not be used.
            ApiError(E_UNAUTHENTICATED): kid still unknown after the refetch.
        """
        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" not in str(e) and "kid" not in str(e).lower():
                raise

        logger.info("jwks_refresh", reason="kid_miss")
        try:
            return self._get_jwks_client(refresh=True).get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="kid_not_found")
            raise ApiError(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: signing key not found"
            ) from e
