"""Test helpers for authentication and common test operations.

Provides:
- Token minting for test authentication
- Header generation for test requests
- Seeding of provider credentials, model descriptors and agents
"""

import time
from uuid import uuid4

import jwt
from sqlalchemy.orm import Session

from murmur.db.models import Agent, ModelDescriptor, ProviderCredential
from murmur.services.crypto import encrypt_api_key
from tests.support.test_verifier import MockJwtVerifier

# Default test token settings
DEFAULT_ISSUER = "test-issuer"
DEFAULT_AUDIENCE = "test-audience"
DEFAULT_EXPIRES_IN = 3600  # 1 hour


def mint_test_token(
    user_id: str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
    **extra_claims,
) -> str:
    """Mint a valid RS256 test JWT with `user_id` as the sub claim."""
    private_key = MockJwtVerifier.get_private_key()

    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }

    return jwt.encode(payload, private_key, algorithm="RS256")


def mint_expired_token(user_id: str) -> str:
    """Mint a token that expired 1 hour ago."""
    return mint_test_token(user_id=user_id, expires_in=-3600)


def auth_headers(user_id: str, **token_kwargs) -> dict[str, str]:
    """Return headers dict with valid Authorization for the given user."""
    token = mint_test_token(user_id, **token_kwargs)
    return {"Authorization": f"Bearer {token}"}


def create_test_user_id() -> str:
    """Random opaque user id, shaped like an identity provider subject."""
    return f"user_{uuid4().hex}"


def seed_provider(
    db: Session,
    provider_id: str = "openai",
    api_key: str = "sk-test-0123456789abcdef",
    name: str | None = None,
    base_url: str | None = None,
    is_default: bool = False,
) -> ProviderCredential:
    """Insert a provider credential with a properly sealed key."""
    ciphertext, nonce, fingerprint = encrypt_api_key(api_key)
    provider = ProviderCredential(
        id=provider_id,
        name=name or provider_id.title(),
        encrypted_api_key=ciphertext,
        key_nonce=nonce,
        key_fingerprint=fingerprint,
        base_url=base_url,
        is_default=is_default,
    )
    db.add(provider)
    db.commit()
    return provider


def seed_model(
    db: Session,
    provider_id: str,
    model_sdk_id: str,
    name: str | None = None,
    is_enabled: bool = True,
    is_default: bool = False,
) -> ModelDescriptor:
    """Insert a model descriptor under an existing provider."""
    model = ModelDescriptor(
        id=f"{provider_id}:{model_sdk_id}",
        provider_id=provider_id,
        model_sdk_id=model_sdk_id,
        name=name or model_sdk_id,
        is_enabled=is_enabled,
        is_default=is_default,
    )
    db.add(model)
    db.commit()
    return model


def seed_agent(
    db: Session,
    owner_user_id: str,
    name: str = "Editor",
    system_prompt: str = "You fix grammar and nothing else.",
    is_default: bool = False,
) -> Agent:
    """Insert an agent owned by `owner_user_id`."""
    agent = Agent(
        owner_user_id=owner_user_id,
        name=name,
        system_prompt=system_prompt,
        is_default=is_default,
    )
    db.add(agent)
    db.commit()
    return agent
