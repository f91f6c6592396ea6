"""Conversations and message history API routes.

Routes are transport-only: each calls exactly one service function.

- Conversations: GET (list), POST, GET/PUT/DELETE by id
- Messages: GET the stored history, PUT to replace it (append_turn)

All routes require authentication.
Response envelope: {"data": ...} or {"data": [...], "page": {...}}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from murmur.api.deps import get_db
from murmur.auth.middleware import Viewer, get_viewer
from murmur.responses import success_response
from murmur.schemas.conversation import (
    CreateConversationRequest,
    RenameConversationRequest,
    ReplaceMessagesRequest,
)
from murmur.services import conversations as conversations_service

router = APIRouter(tags=["conversations"])


# =============================================================================
# Conversation Endpoints
# =============================================================================


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=100, description="Maximum results (1-100)"),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
) -> dict:
    """List conversations owned by the viewer.

    Ordered by updated_at DESC, id DESC with cursor-based pagination.

    Errors:
        E_INVALID_CURSOR (400): Cursor is malformed or unparseable.
    """
    conversations, page = conversations_service.list_conversations(
        db=db,
        viewer_id=viewer.user_id,
        limit=limit,
        cursor=cursor,
    )
    return {
        "data": [c.model_dump(mode="json") for c in conversations],
        "page": page.model_dump(mode="json"),
    }


@router.post("/conversations", status_code=201)
def create_conversation(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    body: CreateConversationRequest | None = None,
) -> dict:
    """Create an empty conversation, optionally under a client-chosen id.

    Errors:
        E_CONVERSATION_EXISTS (409): The id is already taken.
    """
    body = body or CreateConversationRequest()
    result = conversations_service.create_conversation(
        db=db,
        viewer_id=viewer.user_id,
        title=body.title,
        external_id=body.id,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}")
def get_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get a conversation by id.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Missing or not owned by the viewer.
    """
    result = conversations_service.get_conversation(
        db=db, viewer_id=viewer.user_id, conversation_id=conversation_id
    )
    return success_response(result.model_dump(mode="json"))


@router.put("/conversations/{conversation_id}")
def rename_conversation(
    conversation_id: UUID,
    body: RenameConversationRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Set an explicit title. Derived titles never replace it afterwards."""
    result = conversations_service.rename_conversation(
        db=db,
        viewer_id=viewer.user_id,
        conversation_id=conversation_id,
        title=body.title,
    )
    return success_response(result.model_dump(mode="json"))


@router.delete("/conversations/{conversation_id}", status_code=204)
def delete_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a conversation and its message history.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Missing or not owned by the viewer.
    """
    conversations_service.delete_conversation(
        db=db, viewer_id=viewer.user_id, conversation_id=conversation_id
    )
    return Response(status_code=204)


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/conversations/{conversation_id}/messages")
def get_messages(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Return the full stored history in order (empty before the first turn)."""
    result = conversations_service.get_messages(
        db=db, viewer_id=viewer.user_id, conversation_id=conversation_id
    )
    return success_response(result.model_dump(mode="json"))


@router.put("/conversations/{conversation_id}/messages")
def replace_messages(
    conversation_id: UUID,
    body: ReplaceMessagesRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Replace the stored history with the complete message sequence.

    The body carries prior turns plus the new ones, never just a delta.
    A one-message user history titles the conversation.
    """
    result = conversations_service.append_turn(
        db=db,
        viewer_id=viewer.user_id,
        conversation_id=conversation_id,
        messages=body.messages,
    )
    return success_response(result.model_dump(mode="json"))
