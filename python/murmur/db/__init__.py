"""Database module for Murmur.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from murmur.db.engine import create_db_engine, get_engine
from murmur.db.models import (
    Agent,
    Base,
    Conversation,
    MessageLog,
    ModelDescriptor,
    ProviderCredential,
    UserSettings,
)
from murmur.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Base
    "Base",
    # Models
    "Agent",
    "Conversation",
    "MessageLog",
    "ModelDescriptor",
    "ProviderCredential",
    "UserSettings",
]
