"""Agent and user settings schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 200
SYSTEM_PROMPT_MAX_LENGTH = 2000


class AgentOut(BaseModel):
    """Response schema for an agent."""

    id: UUID
    name: str
    description: str | None = None
    system_prompt: str
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    system_prompt: str = Field(..., min_length=1, max_length=SYSTEM_PROMPT_MAX_LENGTH)
    is_default: bool = False

    model_config = ConfigDict(str_strip_whitespace=True)


class AgentUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    system_prompt: str | None = Field(
        default=None, min_length=1, max_length=SYSTEM_PROMPT_MAX_LENGTH
    )
    is_default: bool | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class UserSettingsOut(BaseModel):
    settings: dict[str, Any]


class UserSettingsUpdate(BaseModel):
    """Replaces the stored settings object wholesale."""

    settings: dict[str, Any]
