"""Tests for the desktop chat thread (client side of POST /chat)."""

import json
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
import respx

from murmur.client.chat import ChatStreamError, ChatThread, iter_sse_events

API_URL = "http://api.test"


def sse_body(*events: tuple[str, dict]) -> str:
    return "".join(f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events)


async def lines(*items: str):
    for item in items:
        yield item


@pytest_asyncio.fixture
async def httpx_client():
    async with httpx.AsyncClient(base_url=API_URL) as client:
        yield client


class TestIterSseEvents:
    @pytest.mark.asyncio
    async def test_parses_event_and_data_pairs(self):
        events = [
            event
            async for event in iter_sse_events(
                lines(
                    "event: meta",
                    'data: {"model_id": "openai:gpt-4o"}',
                    "",
                    "event: delta",
                    'data: {"delta": "Hi"}',
                    "",
                )
            )
        ]

        assert events == [("meta", {"model_id": "openai:gpt-4o"}), ("delta", {"delta": "Hi"})]

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self):
        events = [
            event
            async for event in iter_sse_events(lines("event: done", 'data: {"status": "complete"}'))
        ]

        assert events == [("done", {"status": "complete"})]


class TestChatThread:
    @pytest.mark.asyncio
    @respx.mock
    async def test_streams_reply_and_records_turns(self, httpx_client):
        route = respx.post(f"{API_URL}/chat").respond(
            200,
            content=sse_body(
                ("meta", {"conversation_id": "x", "model_id": "openai:gpt-4o"}),
                ("delta", {"delta": "Hel"}),
                ("delta", {"delta": "lo"}),
                ("done", {"status": "complete"}),
            ),
            headers={"content-type": "text/event-stream"},
        )
        tokens: list[str] = []
        thread = ChatThread(
            httpx_client, token="tok", model_id="openai:gpt-4o", on_token=tokens.append
        )

        reply = await thread.append_user_turn("Hi there")

        assert reply == "Hello"
        assert tokens == ["Hel", "lo"]
        assert thread.messages == [
            {"role": "user", "content": "Hi there"},
            {"role": "assistant", "content": "Hello"},
        ]
        request = route.calls.last.request
        sent = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer tok"
        assert sent["conversationId"] == str(thread.conversation_id)
        assert sent["modelId"] == "openai:gpt-4o"
        assert sent["messages"] == [{"role": "user", "content": "Hi there"}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_second_turn_sends_full_history(self, httpx_client):
        route = respx.post(f"{API_URL}/chat").respond(
            200,
            content=sse_body(("delta", {"delta": "ok"}), ("done", {"status": "complete"})),
        )
        thread = ChatThread(httpx_client)

        await thread.append_user_turn("one")
        await thread.append_user_turn("two")

        sent = json.loads(route.calls.last.request.content)
        assert [m["content"] for m in sent["messages"]] == ["one", "ok", "two"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_done_event(self, httpx_client):
        respx.post(f"{API_URL}/chat").respond(
            200,
            content=sse_body(
                ("delta", {"delta": "partial"}),
                ("done", {"status": "error", "error_code": "E_LLM_RATE_LIMIT"}),
            ),
        )
        thread = ChatThread(httpx_client)

        with pytest.raises(ChatStreamError) as exc_info:
            await thread.append_user_turn("hi")

        assert exc_info.value.error_code == "E_LLM_RATE_LIMIT"
        assert thread.messages == []
        assert thread.failed_turn == "hi"

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_envelope(self, httpx_client):
        respx.post(f"{API_URL}/chat").respond(
            400,
            json={
                "error": {
                    "code": "E_MODEL_NOT_AVAILABLE",
                    "message": "No model requested and no default model set",
                    "request_id": "req-1",
                }
            },
        )
        thread = ChatThread(httpx_client)

        with pytest.raises(ChatStreamError) as exc_info:
            await thread.append_user_turn("hi")

        assert exc_info.value.error_code == "E_MODEL_NOT_AVAILABLE"
        assert "no default model" in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_failure(self, httpx_client):
        respx.post(f"{API_URL}/chat").mock(side_effect=httpx.ConnectError("refused"))
        thread = ChatThread(httpx_client)

        with pytest.raises(ChatStreamError):
            await thread.append_user_turn("hi")

    @pytest.mark.asyncio
    @respx.mock
    async def test_stream_without_done(self, httpx_client):
        respx.post(f"{API_URL}/chat").respond(200, content=sse_body(("delta", {"delta": "x"})))

        with pytest.raises(ChatStreamError):
            await ChatThread(httpx_client).append_user_turn("hi")

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_resends_failed_turn(self, httpx_client):
        route = respx.post(f"{API_URL}/chat")
        route.side_effect = [
            httpx.Response(
                502, json={"error": {"code": "E_LLM_PROVIDER_ERROR", "message": "down"}}
            ),
            httpx.Response(
                200, content=sse_body(("delta", {"delta": "ok"}), ("done", {"status": "complete"}))
            ),
        ]
        thread = ChatThread(httpx_client)

        with pytest.raises(ChatStreamError):
            await thread.append_user_turn("hi")
        reply = await thread.retry()

        assert reply == "ok"
        assert thread.failed_turn is None
        assert thread.messages == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "ok"},
        ]
        sent = json.loads(route.calls.last.request.content)
        assert sent["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_retry_without_failure(self, httpx_client):
        with pytest.raises(ChatStreamError, match="No failed turn"):
            await ChatThread(httpx_client).retry()

    @pytest.mark.asyncio
    @respx.mock
    async def test_system_and_agent_are_sent_when_set(self, httpx_client):
        route = respx.post(f"{API_URL}/chat").respond(
            200, content=sse_body(("done", {"status": "complete"}))
        )
        agent_id = uuid4()
        thread = ChatThread(httpx_client, system="Answer in French.", agent_id=agent_id)

        await thread.append_user_turn("hi")

        sent = json.loads(route.calls.last.request.content)
        assert sent["system"] == "Answer in French."
        assert sent["agentId"] == str(agent_id)

    @pytest.mark.asyncio
    @respx.mock
    async def test_system_omitted_by_default(self, httpx_client):
        route = respx.post(f"{API_URL}/chat").respond(
            200, content=sse_body(("done", {"status": "complete"}))
        )

        await ChatThread(httpx_client).append_user_turn("hi")

        sent = json.loads(route.calls.last.request.content)
        assert "system" not in sent
        assert "agentId" not in sent
