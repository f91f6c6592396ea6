"""X-Request-ID middleware for request correlation and tracing.

Each request gets an id, either the caller's (when it is a sane token) or a
fresh UUID4. The id is stored on request.state, bound into the logging
context, echoed back in the X-Request-ID response header and included in
error envelopes. One access log entry is emitted per request.

Must be added LAST so it runs FIRST: auth failures still carry the header.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from murmur.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Alphanumeric, dots, hyphens, underscores (UUIDs match too)
VALID_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

logger = get_logger(__name__)


def resolve_request_id(incoming: str | None) -> str:
    """Return the caller's request id if acceptable, else a new UUID4.

    UUIDs are lowercased to their canonical form; other ids pass through.
    """
    if incoming and VALID_REQUEST_ID_PATTERN.match(incoming):
        try:
            return str(uuid.UUID(incoming))
        except ValueError:
            return incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware for X-Request-ID handling and access logging."""

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.monotonic()

        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            if self.log_requests:
                viewer = getattr(request.state, "viewer", None)
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2),
                    user_id=viewer.user_id if viewer else None,
                )

            return response

        except Exception:
            # unhandled_exception_handler turns this into the error envelope
            logger.exception("request_failed")
            raise

        finally:
            clear_request_context()
