"""Conversation and message Pydantic schemas.

Messages are role-tagged and schemaless beyond that: `content` is either a
plain string or a list of content blocks (e.g. {"type": "text", "text": ...}),
and any extra keys a client attaches (ids, timestamps) are kept verbatim so a
stored history reads back exactly as it was written.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

MessageRole = Literal["system", "user", "assistant", "tool"]

MAX_TITLE_LENGTH = 200


# =============================================================================
# Messages
# =============================================================================


class ChatMessage(BaseModel):
    """One role-tagged message of a conversation history."""

    role: MessageRole
    content: str | list[dict[str, Any]]

    model_config = ConfigDict(extra="allow")

    def text(self) -> str:
        """Plain text of the message; non-text blocks are skipped."""
        if isinstance(self.content, str):
            return self.content
        return "".join(
            block.get("text", "")
            for block in self.content
            if block.get("type", "text") == "text" and isinstance(block.get("text"), str)
        )

    def to_stored(self) -> dict[str, Any]:
        """Dict form persisted in the message log (only fields actually sent)."""
        return self.model_dump(mode="json", exclude_unset=True)


# =============================================================================
# Response Schemas
# =============================================================================


class ConversationOut(BaseModel):
    """Response schema for a conversation."""

    id: UUID
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PageInfo(BaseModel):
    """Pagination information for list responses."""

    next_cursor: str | None = None


class MessagesOut(BaseModel):
    """Full message history of one conversation."""

    conversation_id: UUID
    messages: list[dict[str, Any]]
    updated_at: datetime | None = None


# =============================================================================
# Request Schemas
# =============================================================================


class CreateConversationRequest(BaseModel):
    """Create a conversation, optionally under a client-chosen id."""

    id: UUID | None = None
    title: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH)

    model_config = ConfigDict(str_strip_whitespace=True)


class RenameConversationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)

    model_config = ConfigDict(str_strip_whitespace=True)


class ReplaceMessagesRequest(BaseModel):
    """Replace the whole stored history with `messages` (prior + new turns)."""

    messages: list[ChatMessage]
