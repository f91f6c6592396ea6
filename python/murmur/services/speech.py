"""Speech proxies.

Forwards recorded audio to an OpenAI-compatible transcription endpoint
(POST {STT_API_URL}/audio/transcriptions), and text to an OpenAI-compatible
speech endpoint (POST {TTS_API_URL}/audio/speech), so provider keys stay on
the server. No retry; one upstream call per request.
"""

import httpx

from murmur.config import Settings
from murmur.errors import ApiError, ApiErrorCode, InvalidRequestError
from murmur.logging import get_logger

logger = get_logger(__name__)

# HTTP timeout (seconds)
HTTP_TIMEOUT = 60.0

DEFAULT_FILENAME = "recording.wav"
DEFAULT_CONTENT_TYPE = "audio/wav"

# Synthesized audio is always requested as WAV
SPEECH_FORMAT = "wav"
SPEECH_CONTENT_TYPE = "audio/wav"


async def transcribe_audio(
    client: httpx.AsyncClient,
    settings: Settings,
    data: bytes,
    filename: str | None = None,
    content_type: str | None = None,
) -> str:
    """Transcribe one audio clip and return its text.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Empty upload.
        ApiError(E_FILE_TOO_LARGE): Upload exceeds MAX_AUDIO_BYTES.
        ApiError(E_TRANSCRIPTION_UNAVAILABLE): No STT key configured.
        ApiError(E_TRANSCRIPTION_FAILED): Upstream error or unusable response.
    """
    if not data:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Audio file is empty")
    if len(data) > settings.max_audio_bytes:
        raise ApiError(ApiErrorCode.E_FILE_TOO_LARGE, "Audio file too large")
    if not settings.stt_api_key:
        raise ApiError(
            ApiErrorCode.E_TRANSCRIPTION_UNAVAILABLE, "Transcription service not configured"
        )

    url = f"{settings.stt_api_url.rstrip('/')}/audio/transcriptions"
    files = {
        "file": (
            filename or DEFAULT_FILENAME,
            data,
            content_type or DEFAULT_CONTENT_TYPE,
        )
    }

    logger.info("speech.transcribe.started", audio_bytes=len(data), model=settings.stt_model)
    try:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {settings.stt_api_key}"},
            data={"model": settings.stt_model},
            files=files,
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.warning("speech.transcribe.failed", error=type(e).__name__)
        raise ApiError(
            ApiErrorCode.E_TRANSCRIPTION_FAILED, "Transcription service unreachable"
        ) from e

    if response.status_code >= 400:
        logger.warning("speech.transcribe.failed", upstream_status=response.status_code)
        raise ApiError(
            ApiErrorCode.E_TRANSCRIPTION_FAILED,
            f"Transcription failed with HTTP {response.status_code}",
        )

    try:
        text = response.json().get("text")
    except (ValueError, AttributeError):
        text = None
    if not isinstance(text, str):
        logger.warning("speech.transcribe.failed", reason="missing_text")
        raise ApiError(ApiErrorCode.E_TRANSCRIPTION_FAILED, "Transcription response had no text")

    logger.info("speech.transcribe.finished", text_chars=len(text))
    return text


async def synthesize_speech(
    client: httpx.AsyncClient,
    settings: Settings,
    text: str,
    voice: str | None = None,
) -> bytes:
    """Read `text` aloud and return the WAV bytes.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Blank text.
        ApiError(E_SPEECH_UNAVAILABLE): No TTS key configured.
        ApiError(E_SPEECH_FAILED): Upstream error or empty audio.
    """
    if not text.strip():
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Text is empty")
    if not settings.tts_api_key:
        raise ApiError(ApiErrorCode.E_SPEECH_UNAVAILABLE, "Speech service not configured")

    url = f"{settings.tts_api_url.rstrip('/')}/audio/speech"
    body = {
        "model": settings.tts_model,
        "input": text,
        "voice": voice or settings.tts_voice,
        "response_format": SPEECH_FORMAT,
    }

    logger.info("speech.synthesize.started", text_chars=len(text), model=settings.tts_model)
    try:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {settings.tts_api_key}"},
            json=body,
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.warning("speech.synthesize.failed", error=type(e).__name__)
        raise ApiError(ApiErrorCode.E_SPEECH_FAILED, "Speech service unreachable") from e

    if response.status_code >= 400:
        logger.warning("speech.synthesize.failed", upstream_status=response.status_code)
        raise ApiError(
            ApiErrorCode.E_SPEECH_FAILED,
            f"Speech generation failed with HTTP {response.status_code}",
        )
    if not response.content:
        logger.warning("speech.synthesize.failed", reason="empty_audio")
        raise ApiError(ApiErrorCode.E_SPEECH_FAILED, "Speech response had no audio")

    logger.info("speech.synthesize.finished", audio_bytes=len(response.content))
    return response.content
