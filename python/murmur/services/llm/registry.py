"""Per-request provider registry built from stored credentials.

ProviderRegistryBuilder.build() reads every ProviderCredential, opens its
sealed API key and constructs a ProviderHandle keyed by the provider's SDK
id. A credential that cannot be turned into a handle (unknown provider
kind, key that fails to decrypt) is logged and skipped; the rest of the
registry is still usable.

The registry is never cached at module level. Routes build a fresh one for
every request so rotated or deleted credentials take effect immediately.

Model ids are "<provider_id>:<model_name>"; the part after the first colon
is sent to the provider verbatim (it may itself contain colons or slashes,
e.g. "ollama:llama3.2:3b" or "groq:meta-llama/llama-4-scout").
"""

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from murmur.db.models import ProviderCredential
from murmur.errors import ModelNotAvailableError
from murmur.logging import get_logger
from murmur.services.crypto import CryptoError, decrypt_api_key
from murmur.services.llm.adapter import LLMAdapter
from murmur.services.llm.anthropic_adapter import ANTHROPIC_BASE_URL, AnthropicAdapter
from murmur.services.llm.errors import LLMError, LLMErrorClass, classify_provider_error
from murmur.services.llm.gemini_adapter import GEMINI_BASE_URL, GeminiAdapter
from murmur.services.llm.openai_adapter import OPENAI_BASE_URL, OpenAICompatibleAdapter
from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse, Turn

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 60

# provider SDK id -> (adapter class, default base URL)
PROVIDER_KINDS: dict[str, tuple[type[LLMAdapter], str]] = {
    "openai": (OpenAICompatibleAdapter, OPENAI_BASE_URL),
    "groq": (OpenAICompatibleAdapter, "https://api.groq.com/openai/v1"),
    "deepseek": (OpenAICompatibleAdapter, "https://api.deepseek.com/v1"),
    "mistral": (OpenAICompatibleAdapter, "https://api.mistral.ai/v1"),
    "ollama": (OpenAICompatibleAdapter, "http://localhost:11434/v1"),
    "anthropic": (AnthropicAdapter, ANTHROPIC_BASE_URL),
    "google": (GeminiAdapter, GEMINI_BASE_URL),
}


class ProviderConstructionError(Exception):
    """A stored credential could not be turned into a provider handle."""

    pass


def split_model_id(model_id: str) -> tuple[str, str]:
    """Split "provider:model" at the first colon.

    Raises:
        ValueError: If either part is empty or there is no colon.
    """
    provider_id, sep, model_name = model_id.partition(":")
    if not sep or not provider_id or not model_name:
        raise ValueError(f"Malformed model id: {model_id!r}")
    return provider_id, model_name


def _base_url_for(provider_id: str, stored_base_url: str | None) -> str:
    default_base_url = PROVIDER_KINDS[provider_id][1]
    base_url = (stored_base_url or default_base_url).rstrip("/")
    # Ollama is commonly configured with its root URL; the chat API lives under /v1
    if provider_id == "ollama" and not base_url.endswith("/v1"):
        base_url = f"{base_url}/v1"
    return base_url


# =============================================================================
# Handles
# =============================================================================


@dataclass
class ProviderHandle:
    """A provider ready to be called: adapter plus decrypted key."""

    provider_id: str
    adapter: LLMAdapter
    api_key: str = field(repr=False)

    def language_model(self, model_name: str) -> "ModelHandle":
        return ModelHandle(provider=self, model_name=model_name)


@dataclass
class ModelHandle:
    """One callable model. Normalizes provider failures into LLMError."""

    provider: ProviderHandle
    model_name: str

    @property
    def model_id(self) -> str:
        return f"{self.provider.provider_id}:{self.model_name}"

    def _request(self, turns: list[Turn], max_tokens: int, temperature: float | None):
        return LLMRequest(
            model_name=self.model_name,
            messages=turns,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    async def generate(
        self,
        turns: list[Turn],
        *,
        max_tokens: int,
        temperature: float | None = None,
        timeout_s: int = DEFAULT_TIMEOUT_S,
    ) -> LLMResponse:
        """Non-streaming completion.

        Raises:
            LLMError: With a normalized error class on any provider failure.
        """
        req = self._request(turns, max_tokens, temperature)
        logger.info("llm.request.started", model_id=self.model_id, streaming=False)
        start = time.monotonic()
        try:
            response = await self.provider.adapter.generate(
                req, api_key=self.provider.api_key, timeout_s=timeout_s
            )
        except Exception as exc:
            raise self._normalize(exc, start) from exc

        usage = response.usage
        logger.info(
            "llm.request.finished",
            model_id=self.model_id,
            latency_ms=int((time.monotonic() - start) * 1000),
            tokens_output=usage.completion_tokens if usage else None,
            provider_request_id=response.provider_request_id,
        )
        return response

    async def stream(
        self,
        turns: list[Turn],
        *,
        max_tokens: int,
        temperature: float | None = None,
        timeout_s: int = DEFAULT_TIMEOUT_S,
    ) -> AsyncIterator[LLMChunk]:
        """Streaming completion; yields chunks up to and including done=True.

        Raises:
            LLMError: With a normalized error class on any provider failure.
        """
        req = self._request(turns, max_tokens, temperature)
        logger.info("llm.request.started", model_id=self.model_id, streaming=True)
        start = time.monotonic()
        try:
            async for chunk in self.provider.adapter.generate_stream(
                req, api_key=self.provider.api_key, timeout_s=timeout_s
            ):
                if chunk.done:
                    usage = chunk.usage
                    logger.info(
                        "llm.request.finished",
                        model_id=self.model_id,
                        latency_ms=int((time.monotonic() - start) * 1000),
                        tokens_output=usage.completion_tokens if usage else None,
                        provider_request_id=chunk.provider_request_id,
                    )
                yield chunk
        except Exception as exc:
            raise self._normalize(exc, start) from exc

    def _normalize(self, exc: Exception, start: float) -> LLMError:
        """Map an adapter exception to LLMError and log the failure."""
        provider_id = self.provider.provider_id
        if isinstance(exc, LLMError):
            error = LLMError(exc.error_class, exc.message, provider=provider_id)
        elif isinstance(exc, httpx.TimeoutException):
            error = LLMError(LLMErrorClass.TIMEOUT, "Request timed out", provider=provider_id)
        elif isinstance(exc, httpx.HTTPStatusError):
            try:
                json_body = exc.response.json()
            except (ValueError, httpx.ResponseNotRead):
                # Streamed error bodies are not read
                json_body = None
            # httpx.Response.json() may hand back a list or scalar
            if not isinstance(json_body, dict):
                json_body = None
            error = LLMError(
                classify_provider_error(
                    self.provider.adapter.kind, exc.response.status_code, json_body
                ),
                f"Provider returned HTTP {exc.response.status_code}",
                provider=provider_id,
            )
        elif isinstance(exc, httpx.TransportError):
            error = LLMError(LLMErrorClass.PROVIDER_DOWN, "Network error", provider=provider_id)
        else:
            error = LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                f"Unexpected error: {type(exc).__name__}",
                provider=provider_id,
            )

        logger.error(
            "llm.request.failed",
            model_id=self.model_id,
            error_class=error.error_class.value,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
        return error


# =============================================================================
# Registry
# =============================================================================


class ProviderRegistry:
    """Provider handles available for this request, keyed by provider id."""

    def __init__(self, handles: dict[str, ProviderHandle], skipped: list[str] | None = None):
        self._handles = handles
        self.skipped = skipped or []

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._handles

    @property
    def provider_ids(self) -> list[str]:
        return sorted(self._handles)

    def provider(self, provider_id: str) -> ProviderHandle | None:
        return self._handles.get(provider_id)

    def language_model(self, model_id: str) -> ModelHandle:
        """Resolve "provider:model" to a callable handle.

        Raises:
            ModelNotAvailableError: If the id is malformed or its provider has
                no handle in this registry.
        """
        try:
            provider_id, model_name = split_model_id(model_id)
        except ValueError:
            raise ModelNotAvailableError(model_id, "Malformed model id") from None

        handle = self._handles.get(provider_id)
        if handle is None:
            raise ModelNotAvailableError(model_id)
        return handle.language_model(model_name)


class ProviderRegistryBuilder:
    """Builds a ProviderRegistry from the credentials table.

    Args:
        db: Session used to read credentials.
        client: Shared httpx client the adapters send requests through.
    """

    def __init__(self, db: Session, client: httpx.AsyncClient):
        self._db = db
        self._client = client

    def build(self) -> ProviderRegistry:
        credentials = self._db.scalars(
            select(ProviderCredential).order_by(ProviderCredential.id)
        ).all()

        handles: dict[str, ProviderHandle] = {}
        skipped: list[str] = []
        for credential in credentials:
            try:
                handles[credential.id] = self.construct(credential)
            except ProviderConstructionError as exc:
                skipped.append(credential.id)
                logger.warning(
                    "provider_registry.provider_skipped",
                    provider_id=credential.id,
                    reason=str(exc),
                )

        logger.info(
            "provider_registry.built",
            providers=sorted(handles),
            skipped=len(skipped),
        )
        return ProviderRegistry(handles, skipped)

    def construct(self, credential: ProviderCredential) -> ProviderHandle:
        """Turn one stored credential into a handle.

        Raises:
            ProviderConstructionError: Unknown provider kind or unreadable key.
        """
        if credential.id not in PROVIDER_KINDS:
            raise ProviderConstructionError(f"unknown provider kind: {credential.id}")

        try:
            api_key = decrypt_api_key(credential.encrypted_api_key, credential.key_nonce)
        except CryptoError as exc:
            raise ProviderConstructionError(f"api key could not be decrypted: {exc}") from exc

        adapter_cls = PROVIDER_KINDS[credential.id][0]
        adapter = adapter_cls(self._client, _base_url_for(credential.id, credential.base_url))
        return ProviderHandle(provider_id=credential.id, adapter=adapter, api_key=api_key)
