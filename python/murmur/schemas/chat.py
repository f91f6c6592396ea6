"""Chat completion request/response schemas.

The chat endpoint speaks camelCase on the wire (`conversationId`,
`modelId`, `agentId`) to match the desktop client; snake_case is accepted too.
"""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from murmur.schemas.conversation import ChatMessage


class ChatRequest(BaseModel):
    """Body of POST /chat and POST /chat/nostream.

    `messages` is the complete history including the new user turn as the
    last element. The system prompt is `system` when given, else the prompt
    of agent `agentId`, else the viewer's default agent, else the server
    default.
    """

    messages: list[ChatMessage] = Field(..., min_length=1)
    conversation_id: UUID | None = Field(default=None, alias="conversationId")
    model_id: str | None = Field(default=None, alias="modelId")
    system: str | None = None
    agent_id: UUID | None = Field(default=None, alias="agentId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("messages")
    @classmethod
    def last_message_is_user(cls, v: list[ChatMessage]) -> list[ChatMessage]:
        if v[-1].role != "user":
            raise ValueError("Last message must be a user turn")
        return v


class ChatResponse(BaseModel):
    """Non-streaming chat result."""

    conversation_id: UUID
    model_id: str
    message: dict[str, Any]


class StreamMetaEvent(BaseModel):
    """SSE meta event at stream start."""

    conversation_id: UUID
    model_id: str


class StreamDeltaEvent(BaseModel):
    """SSE delta event with incremental content."""

    delta: str


class StreamDoneEvent(BaseModel):
    """SSE done event at stream end."""

    status: str  # "complete" | "error"
    error_code: str | None = None
