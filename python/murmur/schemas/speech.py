"""Text-to-speech request schema."""

from pydantic import BaseModel, Field

# Upper bound the OpenAI-compatible speech endpoints accept per request
SPEECH_TEXT_MAX_LENGTH = 4096


class SpeechRequest(BaseModel):
    """Body of POST /speech/synthesize."""

    text: str = Field(..., min_length=1, max_length=SPEECH_TEXT_MAX_LENGTH)
    voice: str | None = None
