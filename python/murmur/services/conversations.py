"""Conversation store.

Persists conversations and their message history. Each conversation has at
most one MessageLog row holding the entire history as a single list; every
write replaces that list wholesale, so callers always pass the complete,
ordered history (prior turns + new turns), never a delta.

All operations:
- Enforce owner-only access
- Use E_CONVERSATION_NOT_FOUND for both missing and foreign rows (prevent probing)

Concurrent append_turn calls on one conversation are last-write-wins; there
is no version check.
"""

import base64
import json
import re
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from murmur.db.models import Conversation, MessageLog, utcnow
from murmur.db.session import transaction
from murmur.errors import ApiErrorCode, ConflictError, InvalidRequestError, NotFoundError
from murmur.logging import get_logger
from murmur.schemas.conversation import ChatMessage, ConversationOut, MessagesOut, PageInfo

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

# Derived titles never exceed this many characters
TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."

# Pagination limits
DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 100

_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Cursor Encoding/Decoding
# =============================================================================


def encode_conversation_cursor(updated_at: datetime, id: UUID) -> str:
    """Encode a keyset cursor as base64url JSON without padding."""
    payload = {"updated_at": updated_at.isoformat(), "id": str(id)}
    json_bytes = json.dumps(payload).encode("utf-8")
    return base64.urlsafe_b64encode(json_bytes).decode("ascii").rstrip("=")


def decode_conversation_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Decode a cursor produced by encode_conversation_cursor.

    Raises:
        InvalidRequestError(E_INVALID_CURSOR): If cursor is malformed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
        return datetime.fromisoformat(payload["updated_at"]), UUID(payload["id"])
    except (ValueError, KeyError, TypeError):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CURSOR, "Invalid cursor") from None


# =============================================================================
# Helper Functions
# =============================================================================


def clamp_limit(limit: int) -> int:
    """Clamp limit to valid range [MIN_LIMIT, MAX_LIMIT]."""
    return min(max(limit, MIN_LIMIT), MAX_LIMIT)


def get_conversation_for_viewer_or_404(
    db: Session, viewer_id: str, conversation_id: UUID
) -> Conversation:
    """Load conversation and verify ownership.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If conversation doesn't exist
            OR viewer is not the owner.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None or conversation.owner_user_id != viewer_id:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def stored_messages(conversation: Conversation) -> list[dict[str, Any]]:
    if conversation.message_log is None:
        return []
    return list(conversation.message_log.messages)


def conversation_to_out(conversation: Conversation) -> ConversationOut:
    return ConversationOut(
        id=conversation.id,
        title=conversation.title,
        message_count=len(stored_messages(conversation)),
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


def title_from_text(text: str) -> str:
    """Collapse whitespace and bound the length of a derived title."""
    title = _WHITESPACE.sub(" ", text).strip()
    if len(title) > TITLE_MAX_LENGTH:
        cut = TITLE_MAX_LENGTH - len(TITLE_ELLIPSIS)
        title = title[:cut].rstrip() + TITLE_ELLIPSIS
    return title


def _as_stored(messages: Sequence[ChatMessage | dict[str, Any]]) -> list[dict[str, Any]]:
    return [m.to_stored() if isinstance(m, ChatMessage) else dict(m) for m in messages]


# =============================================================================
# Service Functions
# =============================================================================


def create_conversation(
    db: Session,
    viewer_id: str,
    title: str | None = None,
    external_id: UUID | None = None,
) -> ConversationOut:
    """Create a new empty conversation.

    Args:
        db: Database session.
        viewer_id: The owner of the new conversation.
        title: Explicit title; derivation never overrides it.
        external_id: Client-chosen id, so client and server agree on the id
            before the first turn is persisted. Generated when omitted.

    Raises:
        ConflictError(E_CONVERSATION_EXISTS): If external_id is already taken.
    """
    if external_id is not None and db.get(Conversation, external_id) is not None:
        raise ConflictError(ApiErrorCode.E_CONVERSATION_EXISTS, "Conversation already exists")

    conversation = Conversation(
        id=external_id or uuid4(),
        owner_user_id=viewer_id,
    )
    if title:
        conversation.title = title
        conversation.title_explicit = True

    try:
        with transaction(db):
            db.add(conversation)
            db.flush()
    except IntegrityError:
        raise ConflictError(
            ApiErrorCode.E_CONVERSATION_EXISTS, "Conversation already exists"
        ) from None

    logger.info("conversation.created", conversation_id=str(conversation.id))
    return conversation_to_out(conversation)


def ensure_conversation(
    db: Session, viewer_id: str, conversation_id: UUID | None = None
) -> Conversation:
    """Return the viewer's conversation, creating it lazily on a first turn.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If the id belongs to another user.
    """
    if conversation_id is not None:
        existing = db.get(Conversation, conversation_id)
        if existing is not None:
            if existing.owner_user_id != viewer_id:
                raise NotFoundError(
                    ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found"
                )
            return existing

    try:
        out = create_conversation(db, viewer_id, external_id=conversation_id)
    except ConflictError:
        # Lost a race with a concurrent first turn for the same id
        return get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)
    return get_conversation_for_viewer_or_404(db, viewer_id, out.id)


def get_conversation(db: Session, viewer_id: str, conversation_id: UUID) -> ConversationOut:
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)
    return conversation_to_out(conversation)


def list_conversations(
    db: Session,
    viewer_id: str,
    limit: int = DEFAULT_LIMIT,
    cursor: str | None = None,
) -> tuple[list[ConversationOut], PageInfo]:
    """List the viewer's conversations, most recently updated first.

    Returns:
        Tuple of (conversations, page_info).

    Raises:
        InvalidRequestError(E_INVALID_CURSOR): If cursor is malformed.
    """
    limit = clamp_limit(limit)

    query = (
        select(Conversation)
        .options(selectinload(Conversation.message_log))
        .where(Conversation.owner_user_id == viewer_id)
    )
    if cursor:
        cursor_updated_at, cursor_id = decode_conversation_cursor(cursor)
        query = query.where(
            or_(
                Conversation.updated_at < cursor_updated_at,
                and_(
                    Conversation.updated_at == cursor_updated_at,
                    Conversation.id < cursor_id,
                ),
            )
        )

    # Fetch one extra row to know whether another page exists
    rows = db.scalars(
        query.order_by(Conversation.updated_at.desc(), Conversation.id.desc()).limit(limit + 1)
    ).all()

    has_more = len(rows) > limit
    conversations = [conversation_to_out(row) for row in rows[:limit]]

    next_cursor = None
    if has_more and conversations:
        last = conversations[-1]
        next_cursor = encode_conversation_cursor(last.updated_at, last.id)

    return conversations, PageInfo(next_cursor=next_cursor)


def get_messages(db: Session, viewer_id: str, conversation_id: UUID) -> MessagesOut:
    """Return the stored history in order; empty before the first append."""
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)
    log = conversation.message_log
    return MessagesOut(
        conversation_id=conversation.id,
        messages=stored_messages(conversation),
        updated_at=log.updated_at if log is not None else None,
    )


def append_turn(
    db: Session,
    viewer_id: str,
    conversation_id: UUID,
    messages: Sequence[ChatMessage | dict[str, Any]],
) -> MessagesOut:
    """Replace the conversation's history with the full message sequence.

    Creates the MessageLog row on first call and updates it in place
    afterwards. Then derives the title, which is a no-op unless the
    history is exactly one user message.

    Args:
        db: Database session.
        viewer_id: Must own the conversation.
        conversation_id: Target conversation.
        messages: Complete ordered history, not just the new turns.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing or foreign conversation.
    """
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)
    history = _as_stored(messages)

    try:
        _write_log(db, conversation, history)
    except IntegrityError:
        # A concurrent first append inserted the row; rollback expired our
        # view of it, so the retry sees the row and updates it
        _write_log(db, conversation, history)

    logger.info(
        "conversation.turn_appended",
        conversation_id=str(conversation_id),
        message_count=len(history),
    )

    derive_title(db, viewer_id, conversation_id, history)
    return get_messages(db, viewer_id, conversation_id)


def _write_log(db: Session, conversation: Conversation, history: list[dict[str, Any]]) -> None:
    now = utcnow()
    with transaction(db):
        log = conversation.message_log
        if log is None:
            conversation.message_log = MessageLog(messages=history, updated_at=now)
        else:
            log.messages = history
            log.updated_at = now
        conversation.updated_at = now
        db.flush()


def derive_title(
    db: Session,
    viewer_id: str,
    conversation_id: UUID,
    messages: Sequence[ChatMessage | dict[str, Any]] | None = None,
) -> str | None:
    """Title the conversation after its first user message.

    Only acts when the history (``messages`` if given, else the stored log)
    is exactly one message with role "user", and the title was never set
    explicitly. Otherwise a no-op.

    Returns:
        The new title, or None when nothing changed.
    """
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)
    history = _as_stored(messages) if messages is not None else stored_messages(conversation)

    if len(history) != 1 or history[0].get("role") != "user":
        return None
    if conversation.title_explicit:
        return None

    title = title_from_text(ChatMessage.model_validate(history[0]).text())
    if not title or title == conversation.title:
        return None

    with transaction(db):
        conversation.title = title
        conversation.updated_at = utcnow()

    logger.info("conversation.title_derived", conversation_id=str(conversation_id))
    return title


def rename_conversation(
    db: Session, viewer_id: str, conversation_id: UUID, title: str
) -> ConversationOut:
    """Set an explicit title; later derivation will not overwrite it."""
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)

    with transaction(db):
        conversation.title = title
        conversation.title_explicit = True
        conversation.updated_at = utcnow()

    logger.info("conversation.renamed", conversation_id=str(conversation_id))
    return conversation_to_out(conversation)


def delete_conversation(db: Session, viewer_id: str, conversation_id: UUID) -> None:
    """Delete a conversation together with its message log.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing or foreign conversation.
    """
    conversation = get_conversation_for_viewer_or_404(db, viewer_id, conversation_id)

    with transaction(db):
        # ORM cascade removes the MessageLog row on every backend
        db.delete(conversation)

    logger.info("conversation.deleted", conversation_id=str(conversation_id))
