"""Chat completion orchestration.

Turns a chat request into a provider call and, once the reply is complete,
persists the whole turn into the conversation store.

Flow for POST /chat:
1. start(): resolve the model (explicit id or the default model), pick the
   system prompt and make sure the conversation exists. Errors here surface
   as normal API errors.
2. complete(): stream the provider reply as TokenDelta events, then one
   CompletionFinished event.
3. After CompletionFinished has been handed to the caller, the turn is
   persisted (prior + new user turn + assistant reply) in a threadpool with
   its own session, and the title is derived when this was the first turn.

A persistence failure after the reply was delivered is logged and swallowed;
the client already has the text. A stream that is closed early (client
disconnect) or fails at the provider never persists anything.

SSE Events (stream_chat_events):
- meta: {"conversation_id", "model_id"}
- delta: {"delta": "text chunk"}
- done: {"status": "complete|error", "error_code": "..."}
"""

import json
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from murmur.config import Settings
from murmur.errors import ApiError, ApiErrorCode, ModelNotAvailableError
from murmur.logging import get_logger, set_conversation_id
from murmur.schemas.chat import StreamDeltaEvent, StreamDoneEvent, StreamMetaEvent
from murmur.schemas.conversation import ChatMessage
from murmur.services.conversations import append_turn, derive_title, ensure_conversation
from murmur.services.agents import get_agent_for_viewer_or_404
from murmur.services.defaults import get_default_agent, get_default_model
from murmur.services.llm.errors import LLMError
from murmur.services.llm.registry import ModelHandle, ProviderRegistry
from murmur.services.llm.types import Turn

logger = get_logger(__name__)

# Message roles a provider accepts as plain-text turns
_PROVIDER_ROLES = frozenset({"system", "user", "assistant"})


def format_sse_event(event: str, data: dict) -> str:
    """Format data as an SSE event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


# =============================================================================
# Completion events
# =============================================================================


@dataclass(frozen=True)
class TokenDelta:
    text: str


@dataclass(frozen=True)
class CompletionFinished:
    text: str


CompletionEvent = TokenDelta | CompletionFinished


# =============================================================================
# Orchestrator
# =============================================================================


class ChatCompletionOrchestrator:
    """Runs one chat completion against a per-request provider registry.

    Args:
        session_factory: Callable returning a new sync Session; every DB step
            opens its own session inside the threadpool.
        registry: Provider registry built for this request.
        settings: Supplies system prompt, max tokens, temperature and timeout.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: ProviderRegistry,
        settings: Settings,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._settings = settings

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def resolve(self, model_id: str | None) -> ModelHandle:
        """Resolve a registry id, or the default model when none is given.

        Raises:
            ModelNotAvailableError: No default model, malformed id, or the
                model's provider has no handle in the registry.
        """
        if model_id is None:
            model_id = await run_in_threadpool(self._default_model_id)
            if model_id is None:
                raise ModelNotAvailableError(None, "No model requested and no default model set")
        return self._registry.language_model(model_id)

    def _default_model_id(self) -> str | None:
        db = self._session_factory()
        try:
            model = get_default_model(db)
            return model.id if model is not None else None
        finally:
            db.close()

    async def start(self, viewer_id: str, conversation_id: UUID | None) -> UUID:
        """Return the id of the viewer's conversation, creating it if needed."""
        conversation_id = await run_in_threadpool(
            self._ensure_conversation, viewer_id, conversation_id
        )
        set_conversation_id(str(conversation_id))
        return conversation_id

    def _ensure_conversation(self, viewer_id: str, conversation_id: UUID | None) -> UUID:
        db = self._session_factory()
        try:
            return ensure_conversation(db, viewer_id, conversation_id).id
        finally:
            db.close()

    async def system_prompt(
        self, viewer_id: str, system: str | None = None, agent_id: UUID | None = None
    ) -> str:
        """Pick the system prompt for one request.

        An explicit non-blank `system` wins, then agent `agent_id`, then the
        viewer's default agent, then CHAT_SYSTEM_PROMPT.

        Raises:
            NotFoundError(E_AGENT_NOT_FOUND): agent_id is unknown or foreign.
        """
        if system is not None and system.strip():
            return system
        return await run_in_threadpool(self._agent_prompt, viewer_id, agent_id)

    def _agent_prompt(self, viewer_id: str, agent_id: UUID | None) -> str:
        db = self._session_factory()
        try:
            if agent_id is not None:
                return get_agent_for_viewer_or_404(db, viewer_id, agent_id).system_prompt
            agent = get_default_agent(db, viewer_id)
            if agent is not None:
                return agent.system_prompt
            return self._settings.chat_system_prompt
        finally:
            db.close()

    def build_turns(
        self, messages: Sequence[ChatMessage], system_prompt: str | None = None
    ) -> list[Turn]:
        """System prompt first, then the history as plain-text turns."""
        turns = [Turn(role="system", content=system_prompt or self._settings.chat_system_prompt)]
        for message in messages:
            if message.role not in _PROVIDER_ROLES:
                continue
            turns.append(Turn(role=message.role, content=message.text()))
        return turns

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def complete(
        self,
        viewer_id: str,
        conversation_id: UUID,
        prior_messages: Sequence[ChatMessage],
        new_user_turn: ChatMessage,
        model: ModelHandle,
        system_prompt: str | None = None,
    ) -> AsyncIterator[CompletionEvent]:
        """Stream the reply, then persist the turn.

        Persistence runs only when the caller keeps iterating after
        CompletionFinished. LLMError propagates before anything is stored.
        """
        turns = self.build_turns([*prior_messages, new_user_turn], system_prompt)
        parts: list[str] = []

        async for chunk in model.stream(
            turns,
            max_tokens=self._settings.chat_max_tokens,
            temperature=self._settings.chat_temperature,
            timeout_s=self._settings.chat_timeout_s,
        ):
            if chunk.delta_text:
                parts.append(chunk.delta_text)
                yield TokenDelta(chunk.delta_text)

        text = "".join(parts)
        yield CompletionFinished(text)

        await self._persist_quietly(viewer_id, conversation_id, prior_messages, new_user_turn, text)

    async def generate(
        self,
        viewer_id: str,
        conversation_id: UUID,
        prior_messages: Sequence[ChatMessage],
        new_user_turn: ChatMessage,
        model: ModelHandle,
        system_prompt: str | None = None,
    ) -> str:
        """Non-streaming completion; persists before returning the text.

        Raises:
            LLMError: Provider call failed; nothing is stored.
        """
        turns = self.build_turns([*prior_messages, new_user_turn], system_prompt)
        response = await model.generate(
            turns,
            max_tokens=self._settings.chat_max_tokens,
            temperature=self._settings.chat_temperature,
            timeout_s=self._settings.chat_timeout_s,
        )
        await self._persist_quietly(
            viewer_id, conversation_id, prior_messages, new_user_turn, response.text
        )
        return response.text

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _persist_quietly(
        self,
        viewer_id: str,
        conversation_id: UUID,
        prior_messages: Sequence[ChatMessage],
        new_user_turn: ChatMessage,
        text: str,
    ) -> None:
        try:
            await run_in_threadpool(
                self._persist, viewer_id, conversation_id, prior_messages, new_user_turn, text
            )
        except Exception:
            logger.exception("chat.persistence_failed", conversation_id=str(conversation_id))

    def _persist(
        self,
        viewer_id: str,
        conversation_id: UUID,
        prior_messages: Sequence[ChatMessage],
        new_user_turn: ChatMessage,
        text: str,
    ) -> None:
        assistant = ChatMessage(role="assistant", content=text)
        db = self._session_factory()
        try:
            append_turn(db, viewer_id, conversation_id, [*prior_messages, new_user_turn, assistant])
            if not prior_messages:
                derive_title(db, viewer_id, conversation_id, [new_user_turn])
        finally:
            db.close()


# =============================================================================
# Transport helpers
# =============================================================================


async def stream_chat_events(
    orchestrator: ChatCompletionOrchestrator,
    viewer_id: str,
    conversation_id: UUID,
    messages: Sequence[ChatMessage],
    model: ModelHandle,
    system_prompt: str | None = None,
) -> AsyncIterator[str]:
    """Async generator of SSE strings for one chat request.

    The done event is yielded before persistence runs; iteration continues
    afterwards only to let the orchestrator store the turn.
    """
    yield format_sse_event(
        "meta",
        StreamMetaEvent(conversation_id=conversation_id, model_id=model.model_id).model_dump(
            mode="json"
        ),
    )

    events = orchestrator.complete(
        viewer_id, conversation_id, messages[:-1], messages[-1], model, system_prompt
    )
    try:
        async for event in events:
            if isinstance(event, TokenDelta):
                yield format_sse_event("delta", StreamDeltaEvent(delta=event.text).model_dump())
            else:
                yield format_sse_event(
                    "done", StreamDoneEvent(status="complete").model_dump(exclude_none=True)
                )
    except LLMError as e:
        yield format_sse_event(
            "done",
            StreamDoneEvent(status="error", error_code=e.error_class.value).model_dump(),
        )
    finally:
        await events.aclose()


async def generate_chat_reply(
    orchestrator: ChatCompletionOrchestrator,
    viewer_id: str,
    conversation_id: UUID,
    messages: Sequence[ChatMessage],
    model: ModelHandle,
    system_prompt: str | None = None,
) -> str:
    """Run a non-streaming completion for POST /chat/nostream.

    Raises:
        ApiError(E_LLM_PROVIDER_ERROR): Provider call failed.
    """
    try:
        return await orchestrator.generate(
            viewer_id, conversation_id, messages[:-1], messages[-1], model, system_prompt
        )
    except LLMError as e:
        raise ApiError(
            ApiErrorCode.E_LLM_PROVIDER_ERROR,
            f"Model provider failed: {e.error_class.value}",
        ) from e
