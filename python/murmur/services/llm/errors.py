"""Provider error classification and normalization.

Raw httpx failures from adapters are turned into an LLMError carrying one
normalized class, so the chat stream can report a stable error code no
matter which provider failed.

Error classes:
- E_LLM_INVALID_KEY: Authentication failure (401/403)
- E_LLM_RATE_LIMIT: Rate limit exceeded (429)
- E_LLM_CONTEXT_TOO_LARGE: Context length exceeded
- E_LLM_TIMEOUT: Request timed out
- E_LLM_PROVIDER_DOWN: Provider unavailable (5xx, network error, broken stream)
- E_LLM_MODEL_REJECTED: Provider does not know the requested model
"""

from enum import Enum

from murmur.logging import get_logger

logger = get_logger(__name__)


class LLMErrorClass(str, Enum):
    """Normalized provider error classifications."""

    INVALID_KEY = "E_LLM_INVALID_KEY"
    RATE_LIMIT = "E_LLM_RATE_LIMIT"
    CONTEXT_TOO_LARGE = "E_LLM_CONTEXT_TOO_LARGE"
    TIMEOUT = "E_LLM_TIMEOUT"
    PROVIDER_DOWN = "E_LLM_PROVIDER_DOWN"
    MODEL_REJECTED = "E_LLM_MODEL_REJECTED"


class LLMError(Exception):
    """A provider call failed.

    Attributes:
        error_class: The normalized error classification
        message: Human-readable error message (never contains provider bodies)
        provider: Provider id the call was made for (if known)
    """

    def __init__(
        self,
        error_class: LLMErrorClass,
        message: str,
        provider: str | None = None,
    ):
        self.error_class = error_class
        self.message = message
        self.provider = provider
        super().__init__(message)


def classify_provider_error(
    kind: str,
    status_code: int | None,
    json_body: dict | None,
) -> LLMErrorClass:
    """Classify an HTTP error response into a normalized error class.

    Args:
        kind: Adapter protocol family: "openai", "anthropic" or "google".
        status_code: HTTP status code (None when there was no response).
        json_body: Parsed JSON error body, if any.
    """
    if status_code is None:
        return LLMErrorClass.PROVIDER_DOWN

    if kind == "openai":
        return _classify_openai_error(status_code, json_body)
    elif kind == "anthropic":
        return _classify_anthropic_error(status_code, json_body)
    elif kind == "google":
        return _classify_google_error(status_code, json_body)

    logger.warning("unknown_adapter_kind_for_error_classification", kind=kind)
    return LLMErrorClass.PROVIDER_DOWN


def _classify_openai_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """OpenAI-compatible APIs (OpenAI, Groq, DeepSeek, Mistral, Ollama)."""
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429:
        return LLMErrorClass.RATE_LIMIT
    if status_code == 404:
        return LLMErrorClass.MODEL_REJECTED
    if status_code >= 500:
        return LLMErrorClass.PROVIDER_DOWN

    if status_code == 400 and json_body:
        error = json_body.get("error") or {}
        if isinstance(error, str):
            error = {"message": error}
        error_code = error.get("code") or ""
        error_message = (error.get("message") or "").lower()

        if error_code == "context_length_exceeded" or "maximum context length" in error_message:
            return LLMErrorClass.CONTEXT_TOO_LARGE
        if "model" in error_message and (
            "not found" in error_message or "does not exist" in error_message
        ):
            return LLMErrorClass.MODEL_REJECTED

    return LLMErrorClass.PROVIDER_DOWN


def _classify_anthropic_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429:
        return LLMErrorClass.RATE_LIMIT
    if status_code == 404:
        return LLMErrorClass.MODEL_REJECTED
    if status_code >= 500:
        return LLMErrorClass.PROVIDER_DOWN

    if status_code == 400 and json_body:
        error = json_body.get("error") or {}
        if error.get("type") == "invalid_request_error" and "too long" in (
            error.get("message") or ""
        ).lower():
            return LLMErrorClass.CONTEXT_TOO_LARGE

    return LLMErrorClass.PROVIDER_DOWN


def _classify_google_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    # Gemini reports the reason in the body more reliably than in the status
    body_str = str(json_body).lower() if json_body else ""

    if "api_key_invalid" in body_str or status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429 or "resource_exhausted" in body_str:
        return LLMErrorClass.RATE_LIMIT
    if "exceeds the maximum" in body_str:
        return LLMErrorClass.CONTEXT_TOO_LARGE
    if status_code == 404 or "model not found" in body_str:
        return LLMErrorClass.MODEL_REJECTED

    return LLMErrorClass.PROVIDER_DOWN
