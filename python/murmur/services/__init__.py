"""Business logic services.

Service functions are called by route handlers and own every database
write. Routes stay transport-only.
"""

from murmur.services.conversations import (
    append_turn,
    create_conversation,
    derive_title,
    ensure_conversation,
)
from murmur.services.defaults import DefaultKind, set_default

__all__ = [
    "append_turn",
    "create_conversation",
    "derive_title",
    "ensure_conversation",
    "DefaultKind",
    "set_default",
]
