"""Application settings loaded from environment variables.

Environment Configuration:
    MURMUR_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: SQLAlchemy connection string (required)
    LOG_JSON: Emit JSON logs (default true)

Auth Configuration (required in all environments):
    AUTH_JWKS_URL: Full URL to the identity provider's JWKS endpoint
    AUTH_ISSUER: Expected JWT issuer (trailing slash stripped)
    AUTH_AUDIENCES: Comma-separated list of allowed audiences

Provider Credentials:
    MURMUR_KEY_ENCRYPTION_KEY: Base64-encoded 32-byte key used to seal stored
        provider API keys (required in staging/prod)

Speech-to-text Proxy:
    STT_API_URL: OpenAI-compatible base URL for /audio/transcriptions
    STT_API_KEY: Bearer key for the STT provider
    STT_MODEL: Transcription model name

Text-to-speech Proxy:
    TTS_API_URL: OpenAI-compatible base URL for /audio/speech
    TTS_API_KEY: Bearer key for the TTS provider
    TTS_MODEL: Speech model name
    TTS_VOICE: Voice used when a request names none

Chat Completion:
    CHAT_SYSTEM_PROMPT: System prompt prepended to every completion
    CHAT_MAX_TOKENS: Max output tokens per completion
    CHAT_TEMPERATURE: Sampling temperature
    CHAT_TIMEOUT_S: Provider request timeout in seconds
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Respond concisely."


class Settings(BaseSettings):
    """Server configuration.

    Validation rules:
    - DATABASE_URL is always required
    - AUTH_JWKS_URL, AUTH_ISSUER, AUTH_AUDIENCES are required in all environments
    - MURMUR_KEY_ENCRYPTION_KEY is required in staging and prod only
    """

    murmur_env: Environment = Field(default=Environment.LOCAL, alias="MURMUR_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Auth settings (required in all environments)
    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    # Base64-encoded 32-byte key for SecretBox sealing of provider API keys
    murmur_key_encryption_key: str | None = Field(default=None, alias="MURMUR_KEY_ENCRYPTION_KEY")

    # Speech-to-text proxy
    stt_api_url: str = Field(default="https://api.groq.com/openai/v1", alias="STT_API_URL")
    stt_api_key: str | None = Field(default=None, alias="STT_API_KEY")
    stt_model: str = Field(default="distil-whisper-large-v3-en", alias="STT_MODEL")
    max_audio_bytes: int = Field(default=25 * 1024 * 1024, alias="MAX_AUDIO_BYTES")  # 25 MB

    # Text-to-speech proxy
    tts_api_url: str = Field(default="https://api.groq.com/openai/v1", alias="TTS_API_URL")
    tts_api_key: str | None = Field(default=None, alias="TTS_API_KEY")
    tts_model: str = Field(default="playai-tts", alias="TTS_MODEL")
    tts_voice: str = Field(default="Cheyenne-PlayAI", alias="TTS_VOICE")

    # Chat completion
    chat_system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="CHAT_SYSTEM_PROMPT")
    chat_max_tokens: int = Field(default=4000, alias="CHAT_MAX_TOKENS")
    chat_temperature: float = Field(default=0.5, alias="CHAT_TEMPERATURE")
    chat_timeout_s: int = Field(default=60, alias="CHAT_TIMEOUT_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for all environments."""
        missing_auth = []
        if not self.auth_jwks_url:
            missing_auth.append("AUTH_JWKS_URL")
        if not self.auth_issuer:
            missing_auth.append("AUTH_ISSUER")
        if not self.auth_audiences:
            missing_auth.append("AUTH_AUDIENCES")

        if missing_auth:
            raise ValueError(f"Missing required auth settings: {', '.join(missing_auth)}")

        if self.murmur_env in (Environment.STAGING, Environment.PROD):
            if not self.murmur_key_encryption_key:
                raise ValueError(
                    f"MURMUR_KEY_ENCRYPTION_KEY is required for MURMUR_ENV={self.murmur_env.value}"
                )

        if not 0.0 <= self.chat_temperature <= 2.0:
            raise ValueError("CHAT_TEMPERATURE must be between 0.0 and 2.0")

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.auth_audiences:
            return [a.strip() for a in self.auth_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.auth_issuer:
            return self.auth_issuer.rstrip("/")
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
