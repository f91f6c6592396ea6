"""Bearer-token authentication for the API.

Sessions are issued elsewhere; this service only verifies bearer JWTs and
uses the `sub` claim as the owner id of conversations. Every path outside
PUBLIC_PATHS needs a valid token; failures short-circuit with a 401 error
envelope before any route runs.
"""

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from murmur.auth.verifier import TokenVerifier
from murmur.errors import ApiError, ApiErrorCode
from murmur.logging import get_logger, user_id_var
from murmur.responses import error_response

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "authorization"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@dataclass
class Viewer:
    """The authenticated caller. `user_id` is the token's sub claim."""

    user_id: str


def parse_bearer_token(header: str | None) -> str:
    """Return the token from an Authorization header value.

    The scheme is matched case-insensitively.

    Raises:
        ApiError(E_UNAUTHENTICATED): Header missing, not Bearer, or empty token.
    """
    if not header:
        logger.warning("auth_failure", reason="missing_header")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        logger.warning("auth_failure", reason="invalid_header_format")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format")
    return token


class AuthMiddleware(BaseHTTPMiddleware):
    """Verifies the bearer token and attaches a Viewer to request.state."""

    def __init__(self, app: ASGIApp, verifier: TokenVerifier):
        super().__init__(app)
        self.verifier = verifier

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        try:
            token = parse_bearer_token(request.headers.get(AUTHORIZATION_HEADER))
            claims = self.verifier.verify(token)
        except ApiError as e:
            return JSONResponse(
                status_code=e.status_code, content=error_response(e.code, e.message)
            )

        user_id = str(claims["sub"])
        request.state.viewer = Viewer(user_id=user_id)
        user_id_var.set(user_id)

        return await call_next(request)


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency returning the authenticated viewer.

    Raises:
        ApiError(E_UNAUTHENTICATED): No viewer on the request (public path,
            or the app was built without AuthMiddleware).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer

