"""Desktop client settings loaded from environment variables.

    MURMUR_API_URL: Base URL of the Murmur API (default http://localhost:8000)
    MURMUR_API_TOKEN: Bearer token sent with every API call
    MURMUR_TRANSCRIBE_URL: Transcription endpoint override; defaults to the
        API's POST /speech/transcribe

The shell builds one httpx client with create_http_client() and hands it to
TranscriptionClient and ChatThread; the bearer token rides on the client's
default headers.
"""

from functools import lru_cache

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    api_url: str = Field(default="http://localhost:8000", alias="MURMUR_API_URL")
    api_token: str | None = Field(default=None, alias="MURMUR_API_TOKEN")
    transcribe_url: str | None = Field(default=None, alias="MURMUR_TRANSCRIBE_URL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def resolved_transcribe_url(self) -> str:
        return self.transcribe_url or f"{self.api_url.rstrip('/')}/speech/transcribe"

    @property
    def auth_headers(self) -> dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}


@lru_cache
def get_client_settings() -> ClientSettings:
    return ClientSettings()


def clear_client_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_client_settings.cache_clear()


def create_http_client(settings: ClientSettings | None = None) -> httpx.AsyncClient:
    """httpx client rooted at the API URL that sends the bearer token on every call."""
    settings = settings or get_client_settings()
    return httpx.AsyncClient(
        base_url=settings.api_url,
        headers=settings.auth_headers,
        timeout=httpx.Timeout(60.0, connect=10.0),
    )
