"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from murmur.api.routes.agents import router as agents_router
from murmur.api.routes.chat import router as chat_router
from murmur.api.routes.conversations import router as conversations_router
from murmur.api.routes.health import router as health_router
from murmur.api.routes.models import router as models_router
from murmur.api.routes.providers import router as providers_router
from murmur.api.routes.speech import router as speech_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(conversations_router)
    api_router.include_router(chat_router)
    api_router.include_router(providers_router)
    api_router.include_router(models_router)
    api_router.include_router(speech_router)
    api_router.include_router(agents_router)
    return api_router


__all__ = ["create_api_router"]
