"""Speech-to-text client.

Uploads one recording as multipart form data (`file`, audio/wav) and returns
the transcribed text. No retry; the caller decides what a failure means.
"""

import httpx

from murmur.client.config import ClientSettings, get_client_settings
from murmur.logging import get_logger

logger = get_logger(__name__)

AUDIO_FILENAME = "recording.wav"
AUDIO_CONTENT_TYPE = "audio/wav"


class TranscriptionError(Exception):
    """Transcription failed.

    Attributes:
        message: Human-readable reason (upstream message when available)
        status_code: Upstream HTTP status, None for network failures
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error_message(response: httpx.Response) -> str:
    """Pull the message out of an error envelope, falling back to the status."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return f"Transcription failed with HTTP {response.status_code}"


class TranscriptionClient:
    """Posts audio to a transcription endpoint.

    Args:
        client: Shared httpx client.
        url: Full transcription URL (e.g. http://localhost:8000/speech/transcribe).
        token: Bearer token, omitted from the request when None (the client's
            default headers may still carry one).
    """

    def __init__(self, client: httpx.AsyncClient, url: str, token: str | None = None):
        self._client = client
        self._url = url
        self._token = token

    @classmethod
    def from_settings(
        cls, client: httpx.AsyncClient, settings: ClientSettings | None = None
    ) -> "TranscriptionClient":
        """Client for the configured transcription endpoint.

        `client` should come from create_http_client(), which carries the token.
        """
        settings = settings or get_client_settings()
        return cls(client, settings.resolved_transcribe_url)

    async def transcribe(self, data: bytes) -> str:
        """Transcribe one recording.

        Raises:
            TranscriptionError: Non-2xx response, network failure, or a
                response without text.
        """
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        files = {"file": (AUDIO_FILENAME, data, AUDIO_CONTENT_TYPE)}

        try:
            response = await self._client.post(self._url, headers=headers, files=files)
        except httpx.HTTPError as e:
            logger.warning("transcription_failed", reason="network", error=type(e).__name__)
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.warning(
                "transcription_failed", reason="http_error", status_code=response.status_code
            )
            raise TranscriptionError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = None

        # Accept both the API envelope ({"data": {"text"}}) and a bare {"text"}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            logger.warning("transcription_failed", reason="missing_text")
            raise TranscriptionError(
                "Transcription response had no text", status_code=response.status_code
            )

        logger.info("transcription_succeeded", text_chars=len(text))
        return text
