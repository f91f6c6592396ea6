"""Provider credential and model descriptor schemas.

No secrets ever leave the backend: responses carry the key fingerprint
(last 4 chars) and never the sealed key or its nonce.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from murmur.services.llm.registry import PROVIDER_KINDS


def _clean_api_key(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("API key must not be empty")
    if any(c.isspace() for c in v):
        raise ValueError("API key contains whitespace")
    return v


# =============================================================================
# Providers
# =============================================================================


class ProviderOut(BaseModel):
    """Response schema for a stored provider credential."""

    id: str
    name: str
    key_fingerprint: str
    base_url: str | None = None
    image_url: str | None = None
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProviderCreate(BaseModel):
    """Request schema for storing a new provider credential."""

    id: str = Field(..., description="Provider SDK id, e.g. openai, groq, ollama")
    name: str = Field(..., min_length=1, max_length=100)
    api_key: str = Field(..., min_length=1)
    base_url: str | None = None
    image_url: str | None = None
    is_default: bool = False

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("id")
    @classmethod
    def validate_provider_id(cls, v: str) -> str:
        v = v.lower()
        if v not in PROVIDER_KINDS:
            raise ValueError(f"Provider must be one of: {', '.join(sorted(PROVIDER_KINDS))}")
        return v

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        return _clean_api_key(v)


class ProviderUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    api_key: str | None = None
    base_url: str | None = None
    image_url: str | None = None
    is_default: bool | None = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _clean_api_key(v)


# =============================================================================
# Models
# =============================================================================


class ModelDescriptorOut(BaseModel):
    """Response schema for a model descriptor."""

    id: str
    provider_id: str
    model_sdk_id: str
    name: str
    is_enabled: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ModelDescriptorCreate(BaseModel):
    provider_id: str = Field(..., min_length=1)
    model_sdk_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    is_enabled: bool = True
    is_default: bool = False

    model_config = ConfigDict(str_strip_whitespace=True)


class ModelDescriptorUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    is_enabled: bool | None = None
    is_default: bool | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


# =============================================================================
# Model registry view
# =============================================================================


class RegistryModelOut(BaseModel):
    id: str
    name: str


class RegistryProviderOut(BaseModel):
    """One provider group in GET /model-registry."""

    id: str
    name: str
    image_url: str | None = None
    base_url: str | None = None
    models: list[RegistryModelOut]


class ModelRegistryOut(BaseModel):
    available_models: list[RegistryProviderOut]
    default_model_id: str | None = None
    default_provider_id: str | None = None
