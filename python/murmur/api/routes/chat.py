"""Chat completion routes.

- POST /chat: Server-Sent Events stream (meta, delta..., done)
- POST /chat/nostream: Same completion as a single JSON response

The request carries the complete history with the new user turn last. The
provider registry is built for this request only. Model resolution and
conversation lookup happen before the stream starts, so those failures come
back as ordinary error envelopes; provider failures during the stream are
reported in the `done` event.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from murmur.api.deps import get_provider_registry, get_session_factory
from murmur.auth.middleware import Viewer, get_viewer
from murmur.config import get_settings
from murmur.responses import success_response
from murmur.schemas.chat import ChatRequest, ChatResponse
from murmur.services.chat import (
    ChatCompletionOrchestrator,
    generate_chat_reply,
    stream_chat_events,
)
from murmur.services.llm import ProviderRegistry

router = APIRouter(tags=["chat"])


def get_chat_orchestrator(
    registry: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> ChatCompletionOrchestrator:
    return ChatCompletionOrchestrator(session_factory, registry, get_settings())


@router.post("/chat")
async def chat_stream(
    body: ChatRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    orchestrator: Annotated[ChatCompletionOrchestrator, Depends(get_chat_orchestrator)],
) -> StreamingResponse:
    """Stream a completion as SSE.

    Errors (before the stream starts):
        E_MODEL_NOT_AVAILABLE (400): No default model, or provider not configured
        E_CONVERSATION_NOT_FOUND (404): conversationId belongs to another user
        E_AGENT_NOT_FOUND (404): agentId unknown or belongs to another user
    """
    model = await orchestrator.resolve(body.model_id)
    system_prompt = await orchestrator.system_prompt(viewer.user_id, body.system, body.agent_id)
    conversation_id = await orchestrator.start(viewer.user_id, body.conversation_id)

    return StreamingResponse(
        stream_chat_events(
            orchestrator, viewer.user_id, conversation_id, body.messages, model, system_prompt
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/chat/nostream")
async def chat_nostream(
    body: ChatRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    orchestrator: Annotated[ChatCompletionOrchestrator, Depends(get_chat_orchestrator)],
) -> dict:
    """Run a completion and return the assistant message.

    Errors:
        E_MODEL_NOT_AVAILABLE (400): No default model, or provider not configured
        E_AGENT_NOT_FOUND (404): agentId unknown or belongs to another user
        E_LLM_PROVIDER_ERROR (502): The provider call failed
    """
    model = await orchestrator.resolve(body.model_id)
    system_prompt = await orchestrator.system_prompt(viewer.user_id, body.system, body.agent_id)
    conversation_id = await orchestrator.start(viewer.user_id, body.conversation_id)
    text = await generate_chat_reply(
        orchestrator, viewer.user_id, conversation_id, body.messages, model, system_prompt
    )
    result = ChatResponse(
        conversation_id=conversation_id,
        model_id=model.model_id,
        message={"role": "assistant", "content": text},
    )
    return success_response(result.model_dump(mode="json"))
