"""Google Gemini adapter.

- Non-stream: POST {base_url}/models/{model}:generateContent
- Stream: POST {base_url}/models/{model}:streamGenerateContent?alt=sse
- API key goes in the x-goog-api-key header, never in the query string
- Roles: assistant → model; system turns become systemInstruction
- The stream ends with a candidate whose finishReason is set
"""

import json
from collections.abc import AsyncIterator

import httpx

from murmur.services.llm.adapter import LLMAdapter
from murmur.services.llm.errors import LLMError, LLMErrorClass
from murmur.services.llm.types import LLMChunk, LLMRequest, LLMResponse, LLMUsage

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _parse_usage(data: dict) -> LLMUsage | None:
    usage_metadata = data.get("usageMetadata")
    if not usage_metadata:
        return None
    return LLMUsage(
        prompt_tokens=usage_metadata.get("promptTokenCount"),
        completion_tokens=usage_metadata.get("candidatesTokenCount"),
        total_tokens=usage_metadata.get("totalTokenCount"),
    )


def _candidate_text(candidate: dict) -> str:
    parts = candidate.get("content", {}).get("parts", [])
    return "".join(part.get("text", "") for part in parts)


class GeminiAdapter(LLMAdapter):
    """Gemini generateContent API."""

    kind = "google"

    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        response = await self._client.post(
            f"{self.base_url}/models/{req.model_name}:generateContent",
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()

        data = response.json()
        candidates = data.get("candidates", [])
        if not candidates:
            raise LLMError(LLMErrorClass.PROVIDER_DOWN, "Gemini response missing candidates")

        return LLMResponse(
            text=_candidate_text(candidates[0]),
            usage=_parse_usage(data),
            provider_request_id=None,
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
            f"{self.base_url}/models/{req.model_name}:streamGenerateContent?alt=sse",
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        ) as response:
            response.raise_for_status()

            usage: LLMUsage | None = None

            async for line in response.aiter_lines():
                if not line.startswith("data: "):
                    continue

                try:
                    data = json.loads(line[6:])
                except json.JSONDecodeError:
                    continue

                usage = _parse_usage(data) or usage
                candidates = data.get("candidates", [])
                if not candidates:
                    continue

                delta_text = _candidate_text(candidates[0])
                if delta_text:
                    yield LLMChunk(delta_text=delta_text, done=False)

                if candidates[0].get("finishReason"):
                    yield LLMChunk(delta_text="", done=True, usage=usage)
                    return

        raise LLMError(
            LLMErrorClass.PROVIDER_DOWN,
            "Gemini stream ended without a finish reason",
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest) -> dict:
        system_parts = [turn.content for turn in req.messages if turn.role == "system"]
        body: dict = {
            "contents": [
                {
                    "role": "model" if turn.role == "assistant" else turn.role,
                    "parts": [{"text": turn.content}],
                }
                for turn in req.messages
                if turn.role != "system"
            ],
            "generationConfig": {"maxOutputTokens": req.max_tokens},
        }
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        if req.temperature is not None:
            body["generationConfig"]["temperature"] = req.temperature
        return body
