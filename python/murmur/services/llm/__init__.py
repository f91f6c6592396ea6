"""Provider adapter layer and per-request provider registry.

Usage:
    from murmur.services.llm import ProviderRegistryBuilder, Turn

    registry = ProviderRegistryBuilder(db, httpx_client).build()
    model = registry.language_model("openai:gpt-4o")
    async for chunk in model.stream([Turn(role="user", content="Hello!")], max_tokens=100):
        ...

Adapters are async (httpx.AsyncClient), never retry, never touch the DB and
never log request/response bodies.
"""

from murmur.services.llm.adapter import LLMAdapter
from murmur.services.llm.errors import LLMError, LLMErrorClass, classify_provider_error
from murmur.services.llm.registry import (
    PROVIDER_KINDS,
    ModelHandle,
    ProviderHandle,
    ProviderRegistry,
    ProviderRegistryBuilder,
)
from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse, LLMUsage, Turn

__all__ = [
    # Core types
    "Turn",
    "LLMRequest",
    "LLMResponse",
    "LLMChunk",
    "LLMUsage",
    # Adapter interface
    "LLMAdapter",
    # Registry
    "PROVIDER_KINDS",
    "ModelHandle",
    "ProviderHandle",
    "ProviderRegistry",
    "ProviderRegistryBuilder",
    # Errors
    "LLMError",
    "LLMErrorClass",
    "classify_provider_error",
]
