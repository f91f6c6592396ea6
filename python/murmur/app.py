"""FastAPI application factory.

create_app() wires exception handlers, routes and (unless skipped) the auth
middleware. The request-id middleware is added separately by
add_request_id_middleware(), after everything else, so it wraps the whole
stack and even auth failures carry X-Request-ID:

    RequestIDMiddleware -> AuthMiddleware -> malformed-JSON guard -> route

One httpx.AsyncClient lives for the lifetime of the app (app.state). The
provider adapters and the speech proxy send through it; the provider
registry itself is rebuilt per request.
"""

import json
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from murmur.api.routes import create_api_router
from murmur.auth.middleware import AuthMiddleware
from murmur.auth.verifier import JwksTokenVerifier, TokenVerifier
from murmur.config import get_settings
from murmur.errors import ApiError, ApiErrorCode
from murmur.logging import configure_logging, get_logger
from murmur.middleware.request_id import RequestIDMiddleware
from murmur.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)

logger = get_logger(__name__)

_JSON_METHODS = ("POST", "PUT", "PATCH")


def create_token_verifier() -> JwksTokenVerifier:
    settings = get_settings()
    return JwksTokenVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(60.0, connect=10.0),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    logger.info("httpx_client_initialized")
    try:
        yield
    finally:
        await app.state.httpx_client.aclose()
        logger.info("httpx_client_closed")


async def reject_malformed_json(request: Request, call_next):
    """Answer 400 for a JSON body that does not parse, before routing."""
    if request.method in _JSON_METHODS and "application/json" in request.headers.get(
        "content-type", ""
    ):
        body = await request.body()
        if body:
            try:
                json.loads(body)
            except json.JSONDecodeError:
                return JSONResponse(
                    status_code=400,
                    content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"),
                )
    return await call_next(request)


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Build the Murmur API.

    Args:
        skip_auth_middleware: Leave AuthMiddleware out (tests add their own).
        token_verifier: Verifier to use instead of the JWKS one from settings.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Murmur API",
        description="Voice-first chat: stored conversations, model providers, streaming",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.middleware("http")(reject_malformed_json)
    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(AuthMiddleware, verifier=token_verifier or create_token_verifier())
        logger.info("auth_middleware_enabled", env=settings.murmur_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add RequestIDMiddleware; call after every other middleware is in place."""
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
