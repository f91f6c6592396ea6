"""Shared type definitions for the provider adapter layer.

Streaming invariants:
- Chunks with done=False MUST have usage=None
- Exactly ONE terminal chunk with done=True
- Terminal chunk MAY carry usage and provider_request_id
- A provider stream that ends without its terminal marker raises PROVIDER_DOWN
"""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class Turn:
    """Provider-agnostic conversation turn (plain text)."""

    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class LLMUsage:
    """Token usage; any field may be missing depending on the provider."""

    prompt_tokens: int | None
    completion_tokens: int | None
    total_tokens: int | None


@dataclass(frozen=True)
class LLMRequest:
    """Request to a provider adapter.

    Attributes:
        model_name: Provider-side model name (e.g. "gpt-4o", "llama3.2")
        messages: Turns in order, system turn first if present
        max_tokens: Maximum tokens in the completion
        temperature: Sampling temperature, None uses provider default
    """

    model_name: str
    messages: list[Turn]
    max_tokens: int
    temperature: float | None = None


@dataclass(frozen=True)
class LLMResponse:
    """Complete response from a non-streaming call."""

    text: str
    usage: LLMUsage | None
    provider_request_id: str | None


@dataclass(frozen=True)
class LLMChunk:
    """Single chunk from a streaming response."""

    delta_text: str
    done: bool
    usage: LLMUsage | None = None
    provider_request_id: str | None = None

    def __post_init__(self):
        if not self.done and self.usage is not None:
            raise ValueError("Non-terminal chunks (done=False) must have usage=None")
