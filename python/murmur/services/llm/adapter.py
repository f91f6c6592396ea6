"""Abstract base class for provider adapters.

Adapters speak one provider wire protocol over a shared httpx.AsyncClient.
They do no retries, no DB access and never log request or response bodies;
raw httpx errors bubble up to ModelHandle for classification.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse


class LLMAdapter(ABC):
    """Base class for provider adapters.

    Args:
        client: Shared httpx.AsyncClient for connection pooling.
        base_url: API root for this provider (no trailing slash).
    """

    #: Protocol family used for error classification and logging
    kind: str = ""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self._client = client
        self.base_url = base_url.rstrip("/")

    @abstractmethod
    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        """Non-streaming generation.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.TimeoutException: On request timeout.
            httpx.NetworkError: On network failure.
        """
        pass

    @abstractmethod
    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming generation. Yields chunks until done=True.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.TimeoutException: On request timeout.
            httpx.NetworkError: On network failure.
            LLMError: If the stream ends without its terminal marker.
        """
        pass
        # Abstract async generator, must yield to be valid
        yield  # type: ignore
