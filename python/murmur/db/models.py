"""SQLAlchemy ORM models for Murmur.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are the portable SQLAlchemy ones (Uuid, JSON, DateTime) so the
same metadata runs on PostgreSQL in production and SQLite in tests.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utcnow() -> datetime:
    return datetime.now(UTC)


DEFAULT_CONVERSATION_TITLE = "New Conversation"


# =============================================================================
# Conversations
# =============================================================================


class Conversation(Base):
    """A chat thread owned by one user.

    The id is either generated here or supplied by the client, so the client
    can address a conversation before its first turn is persisted.
    """

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    title: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_CONVERSATION_TITLE
    )
    # Set once a title is supplied on create or by rename; derivation never overwrites it
    title_explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_conversations_owner_updated", "owner_user_id", "updated_at", "id"),
    )

    # Relationships
    message_log: Mapped["MessageLog | None"] = relationship(
        "MessageLog",
        back_populates="conversation",
        cascade="all, delete-orphan",
        uselist=False,
    )


class MessageLog(Base):
    """Entire message history of one conversation, stored as a single value.

    The primary key is the conversation id, so a conversation can never have
    more than one log row. Writers replace `messages` wholesale.
    """

    __tablename__ = "message_logs"

    conversation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    messages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="message_log"
    )


# =============================================================================
# Provider configuration
# =============================================================================


class ProviderCredential(Base):
    """Stored credentials for one model provider, keyed by its SDK id.

    The API key is sealed with SecretBox; `key_nonce` is the per-key nonce
    (initialization vector) needed to open it. At most one row is default.
    """

    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    encrypted_api_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    key_nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    key_fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    base_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index(
            "uix_providers_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )

    # Relationships
    models: Mapped[list["ModelDescriptor"]] = relationship(
        "ModelDescriptor",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="ModelDescriptor.name",
    )


class ModelDescriptor(Base):
    """A model offered by a provider.

    `id` is the registry id clients send back as `modelId`:
    "<provider_id>:<model_sdk_id>". At most one row is default.
    """

    __tablename__ = "provider_models"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    provider_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    model_sdk_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "provider_id", "model_sdk_id", name="uix_provider_models_provider_sdk_id"
        ),
        Index(
            "uix_provider_models_single_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )

    # Relationships
    provider: Mapped["ProviderCredential"] = relationship(
        "ProviderCredential", back_populates="models"
    )


# =============================================================================
# Per-user configuration
# =============================================================================


class Agent(Base):
    """A named system prompt owned by one user.

    Names are unique per owner. Each owner has at most one default agent,
    whose prompt is used for chat requests that bring no system prompt of
    their own.
    """

    __tablename__ = "agents"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("owner_user_id", "name", name="uix_agents_owner_name"),
        Index(
            "uix_agents_owner_single_default",
            "owner_user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )


class UserSettings(Base):
    """Free-form client preferences for one user, stored as one JSON object."""

    __tablename__ = "user_settings"

    owner_user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
