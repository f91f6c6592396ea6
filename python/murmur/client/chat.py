"""Client-side chat thread.

Holds one conversation's messages locally and sends each new user turn to
POST /chat with the complete history. The conversation id is generated on
the client (UUID4) so client and server agree on it before the first turn
is persisted.
"""

import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from uuid import UUID, uuid4

import httpx

from murmur.logging import get_logger

logger = get_logger(__name__)


class ChatStreamError(Exception):
    """The chat request failed or the stream ended with an error.

    Attributes:
        message: Human-readable reason
        error_code: Server error code when one was reported
    """

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, dict]]:
    """Parse "event:"/"data:" line pairs into (event, data) tuples."""
    event = "message"
    data_lines: list[str] = []
    async for line in lines:
        if line == "":
            if data_lines:
                try:
                    payload = json.loads("\n".join(data_lines))
                except json.JSONDecodeError:
                    payload = {}
                yield event, payload
            event = "message"
            data_lines = []
        elif line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
    if data_lines:
        try:
            yield event, json.loads("\n".join(data_lines))
        except json.JSONDecodeError:
            pass


class ChatThread:
    """One conversation as seen by the desktop client.

    Args:
        client: httpx client; base_url is the Murmur API.
        token: Bearer token for the API.
        model_id: Registry id to use; None lets the server pick the default.
        conversation_id: Existing conversation to continue, else a new UUID4.
        on_token: Called with each streamed text delta.
        system: System prompt sent with every turn; None lets the server pick
            (agent_id, then the default agent, then its own default).
        agent_id: Agent whose prompt the server should use.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        model_id: str | None = None,
        conversation_id: UUID | None = None,
        on_token: Callable[[str], None] | None = None,
        system: str | None = None,
        agent_id: UUID | None = None,
    ):
        self._client = client
        self._token = token
        self.model_id = model_id
        self.conversation_id = conversation_id or uuid4()
        self.on_token = on_token
        self.system = system
        self.agent_id = agent_id
        self.messages: list[dict[str, Any]] = []
        self.failed_turn: str | None = None

    async def append_user_turn(self, text: str) -> str:
        """Send a user turn and stream the reply.

        On failure the user message is taken back out of the thread, so the
        history only ever holds answered turns, and kept in `failed_turn`
        for retry().

        Returns:
            The assistant's reply text.

        Raises:
            ChatStreamError: HTTP error, network failure, or error `done` event.
        """
        self.failed_turn = None
        self.messages.append({"role": "user", "content": text})
        try:
            reply = await self._stream_reply()
        except ChatStreamError:
            self.messages.pop()
            self.failed_turn = text
            raise

        self.messages.append({"role": "assistant", "content": reply})
        logger.info(
            "chat_turn_completed",
            conversation_id=str(self.conversation_id),
            reply_chars=len(reply),
        )
        return reply

    async def retry(self) -> str:
        """Resend the last user turn that failed.

        Raises:
            ChatStreamError: No failed turn, or the resend failed too.
        """
        if self.failed_turn is None:
            raise ChatStreamError("No failed turn to retry")
        return await self.append_user_turn(self.failed_turn)

    async def _stream_reply(self) -> str:
        body = {
            "messages": self.messages,
            "conversationId": str(self.conversation_id),
            "modelId": self.model_id,
        }
        if self.system is not None:
            body["system"] = self.system
        if self.agent_id is not None:
            body["agentId"] = str(self.agent_id)
        headers = {"Accept": "text/event-stream"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        parts: list[str] = []
        status: str | None = None
        error_code: str | None = None

        try:
            async with self._client.stream("POST", "/chat", json=body, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    raise ChatStreamError(*_error_from_response(response))

                async for event, data in iter_sse_events(response.aiter_lines()):
                    if event == "delta":
                        delta = data.get("delta", "")
                        if delta:
                            parts.append(delta)
                            if self.on_token is not None:
                                self.on_token(delta)
                    elif event == "done":
                        status = data.get("status")
                        error_code = data.get("error_code")
                        break
        except httpx.HTTPError as e:
            logger.warning("chat_request_failed", error=type(e).__name__)
            raise ChatStreamError(f"Chat request failed: {e}") from e

        if status != "complete":
            logger.warning("chat_stream_failed", status=status, error_code=error_code)
            raise ChatStreamError(
                "Chat stream ended without completing", error_code=error_code
            )

        return "".join(parts)


def _error_from_response(response: httpx.Response) -> tuple[str, str | None]:
    try:
        error = response.json().get("error", {})
        return error.get("message") or f"HTTP {response.status_code}", error.get("code")
    except (ValueError, AttributeError):
        return f"HTTP {response.status_code}", None
