"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, the shared HTTP client and the
per-request provider registry.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from murmur.db.session import get_db, get_session_factory
from murmur.services.llm import ProviderRegistry, ProviderRegistryBuilder

__all__ = ["get_db", "get_httpx_client", "get_provider_registry", "get_session_factory"]


def get_httpx_client(request: Request) -> httpx.AsyncClient:
    """Get the shared httpx client created in the app lifespan."""
    return request.app.state.httpx_client


def get_provider_registry(
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.AsyncClient, Depends(get_httpx_client)],
) -> ProviderRegistry:
    """Build a fresh provider registry for this request.

    Never cached: credentials rotated or deleted a moment ago must not be
    served from a stale registry.
    """
    return ProviderRegistryBuilder(db, client).build()
