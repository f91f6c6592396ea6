"""OpenAI-compatible chat completions adapter.

Serves every provider that exposes the OpenAI wire protocol: OpenAI itself,
Groq, DeepSeek, Mistral and Ollama's /v1 endpoint. Only the base URL differs.

- Endpoint: POST {base_url}/chat/completions
- Headers: Authorization: Bearer <key>
- Streaming: Server-Sent Events, "data: {...}" lines, terminated by "data: [DONE]"
- text = choices[0].message.content (non-stream) or choices[0].delta.content (stream)
- provider_request_id = x-request-id header or body id
"""

import json
from collections.abc import AsyncIterator

import httpx

from murmur.services.llm.adapter import LLMAdapter
from murmur.services.llm.errors import LLMError, LLMErrorClass
from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse, LLMUsage

OPENAI_BASE_URL = "https://api.openai.com/v1"


def _parse_usage(data: dict) -> LLMUsage | None:
    usage_data = data.get("usage")
    if not usage_data:
        return None
    return LLMUsage(
        prompt_tokens=usage_data.get("prompt_tokens"),
        completion_tokens=usage_data.get("completion_tokens"),
        total_tokens=usage_data.get("total_tokens"),
    )


class OpenAICompatibleAdapter(LLMAdapter):
    """Chat completions over the OpenAI protocol."""

    kind = "openai"

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        response = await self._client.post(
            self.chat_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req, stream=False),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()

        data = response.json()
        choices = data.get("choices", [])
        if not choices:
            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                "Chat completion response missing choices",
            )

        return LLMResponse(
            text=choices[0].get("message", {}).get("content") or "",
            usage=_parse_usage(data),
            provider_request_id=response.headers.get("x-request-id") or data.get("id"),
        )

    async def generate_stream(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> AsyncIterator[LLMChunk]:
        async with self._client.stream(
            "POST",
            self.chat_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req, stream=True),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            response.raise_for_status()

            provider_request_id = response.headers.get("x-request-id")
            usage: LLMUsage | None = None

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue

                data_str = line[6:]
                if data_str == "[DONE]":
                    yield LLMChunk(
                        delta_text="",
                        done=True,
                        usage=usage,
                        provider_request_id=provider_request_id,
                    )
                    return

                try:
                    data = json.loads(data_str)
                except json.JSONDecodeError:
                    continue

                # Usage arrives on a trailing chunk when stream_options asks for it
                usage = _parse_usage(data) or usage
                provider_request_id = provider_request_id or data.get("id")

                choices = data.get("choices") or []
                if not choices:
                    continue
                delta_text = (choices[0].get("delta") or {}).get("content") or ""
                if delta_text:
                    yield LLMChunk(delta_text=delta_text, done=False)

        raise LLMError(
            LLMErrorClass.PROVIDER_DOWN,
            "Chat completion stream ended without [DONE] marker",
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest, stream: bool) -> dict:
        body: dict = {
            "model": req.model_name,
            "messages": [{"role": turn.role, "content": turn.content} for turn in req.messages],
            "max_tokens": req.max_tokens,
            "stream": stream,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}
        if req.temperature is not None:
            body["temperature"] = req.temperature
        return body
