"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from murmur.schemas.agents import (
    AgentCreate,
    AgentOut,
    AgentUpdate,
    UserSettingsOut,
    UserSettingsUpdate,
)
from murmur.schemas.chat import (
    ChatRequest,
    ChatResponse,
    StreamDeltaEvent,
    StreamDoneEvent,
    StreamMetaEvent,
)
from murmur.schemas.conversation import (
    ChatMessage,
    ConversationOut,
    CreateConversationRequest,
    MessagesOut,
    PageInfo,
    RenameConversationRequest,
    ReplaceMessagesRequest,
)
from murmur.schemas.providers import (
    ModelDescriptorCreate,
    ModelDescriptorOut,
    ModelDescriptorUpdate,
    ModelRegistryOut,
    ProviderCreate,
    ProviderOut,
    ProviderUpdate,
    RegistryModelOut,
    RegistryProviderOut,
)
from murmur.schemas.speech import SpeechRequest

__all__ = [
    # Conversations
    "ChatMessage",
    "ConversationOut",
    "CreateConversationRequest",
    "MessagesOut",
    "PageInfo",
    "RenameConversationRequest",
    "ReplaceMessagesRequest",
    # Chat
    "ChatRequest",
    "ChatResponse",
    "StreamMetaEvent",
    "StreamDeltaEvent",
    "StreamDoneEvent",
    # Providers and models
    "ProviderOut",
    "ProviderCreate",
    "ProviderUpdate",
    "ModelDescriptorOut",
    "ModelDescriptorCreate",
    "ModelDescriptorUpdate",
    "RegistryModelOut",
    "RegistryProviderOut",
    "ModelRegistryOut",
    # Agents and user settings
    "AgentOut",
    "AgentCreate",
    "AgentUpdate",
    "UserSettingsOut",
    "UserSettingsUpdate",
    # Speech
    "SpeechRequest",
]
