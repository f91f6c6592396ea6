"""Anthropic messages API adapter.

- Endpoint: POST {base_url}/messages
- Headers: x-api-key, anthropic-version
- The system turn goes into the top-level "system" field
- Streaming events: content_block_delta carries text, message_delta carries
  output usage, message_stop terminates the stream
"""

import json
from collections.abc import AsyncIterator

import httpx

from murmur.services.llm.adapter import LLMAdapter
from murmur.services.llm.errors import LLMError, LLMErrorClass
from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse, LLMUsage

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicAdapter(LLMAdapter):
    """Anthropic messages API, streaming and non-streaming."""

    kind = "anthropic"

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/messages"

    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        response = await self._client.post(
            self.messages_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req, stream=False),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()

        data = response.json()
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )

        usage = None
        usage_data = data.get("usage")
        if usage_data:
            input_tokens = usage_data.get("input_tokens")
            output_tokens = usage_data.get("output_tokens")
            total = None
            if input_tokens is not None and output_tokens is not None:
                total = input_tokens + output_tokens
            usage = LLMUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=total,
            )

        return LLMResponse(text=text, usage=usage, provider_request_id=data.get("id"))

    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        async with self._client.stream(
            "POST",
            self.messages_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req, stream=True),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            response.raise_for_status()

            provider_request_id: str | None = None
            usage: LLMUsage | None = None

            async for line in response.aiter_lines():
                # "event: <type>" lines are redundant with the "type" field in data
                if not line.startswith("data: "):
                    continue

                try:
                    data = json.loads(line[6:])
                except json.JSONDecodeError:
                    continue

                event_type = data.get("type", "")

                if event_type == "message_start":
                    provider_request_id = data.get("message", {}).get("id")
                elif event_type == "content_block_delta":
                    delta = data.get("delta", {})
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield LLMChunk(delta_text=delta["text"], done=False)
                elif event_type == "message_delta":
                    usage_data = data.get("usage") or {}
                    if usage_data:
                        usage = LLMUsage(
                            prompt_tokens=None,
                            completion_tokens=usage_data.get("output_tokens"),
                            total_tokens=None,
                        )
                elif event_type == "message_stop":
                    yield LLMChunk(
                        delta_text="",
                        done=True,
                        usage=usage,
                        provider_request_id=provider_request_id,
                    )
                    return
                elif event_type == "error":
                    raise LLMError(
                        LLMErrorClass.PROVIDER_DOWN,
                        "Anthropic stream reported an error event",
                    )

        raise LLMError(
            LLMErrorClass.PROVIDER_DOWN,
            "Anthropic stream ended without message_stop event",
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest, stream: bool) -> dict:
        system_parts = [turn.content for turn in req.messages if turn.role == "system"]
        body: dict = {
            "model": req.model_name,
            "max_tokens": req.max_tokens,
            "messages": [
                {"role": turn.role, "content": turn.content}
                for turn in req.messages
                if turn.role != "system"
            ],
            "stream": stream,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if req.temperature is not None:
            body["temperature"] = req.temperature
        return body
