"""Speech proxy routes.

- POST /speech/transcribe: multipart `file` (the recorded WAV) in,
  {"data": {"text": "..."}} out
- POST /speech/synthesize: {"text", "voice"?} in, audio/wav bytes out

Provider keys never leave the server.
"""

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, File, Response, UploadFile

from murmur.api.deps import get_httpx_client
from murmur.auth.middleware import Viewer, get_viewer
from murmur.config import get_settings
from murmur.responses import success_response
from murmur.schemas.speech import SpeechRequest
from murmur.services.speech import SPEECH_CONTENT_TYPE, synthesize_speech, transcribe_audio

router = APIRouter(tags=["speech"])


@router.post("/speech/transcribe")
async def transcribe(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    client: Annotated[httpx.AsyncClient, Depends(get_httpx_client)],
    file: Annotated[UploadFile, File(...)],
) -> dict:
    """Transcribe one recording.

    Errors:
        E_INVALID_REQUEST (400): Empty upload
        E_FILE_TOO_LARGE (413): Upload exceeds MAX_AUDIO_BYTES
        E_TRANSCRIPTION_FAILED (502): STT provider error
        E_TRANSCRIPTION_UNAVAILABLE (503): STT provider not configured
    """
    data = await file.read()
    text = await transcribe_audio(
        client,
        get_settings(),
        data,
        filename=file.filename,
        content_type=file.content_type,
    )
    return success_response({"text": text})


@router.post("/speech/synthesize")
async def synthesize(
    body: SpeechRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    client: Annotated[httpx.AsyncClient, Depends(get_httpx_client)],
) -> Response:
    """Read text aloud; the response body is the WAV audio.

    Errors:
        E_INVALID_REQUEST (400): Empty, blank or overlong text
        E_SPEECH_FAILED (502): TTS provider error
        E_SPEECH_UNAVAILABLE (503): TTS provider not configured
    """
    audio = await synthesize_speech(client, get_settings(), body.text, voice=body.voice)
    return Response(content=audio, media_type=SPEECH_CONTENT_TYPE)
