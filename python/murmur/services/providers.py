"""Provider credential and model descriptor configuration.

Handles the configuration side of the model catalogue:
- Providers: list, create, update (including key rotation), delete
- Models: list, create, update, delete

API keys are sealed with crypto.encrypt_api_key before they touch the
database and are never returned; responses carry the fingerprint only.

Any request to make a row the default is delegated to defaults.set_default,
so the single-default rule has exactly one writer.
"""

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from murmur.db.models import ModelDescriptor, ProviderCredential, utcnow
from murmur.db.session import transaction
from murmur.errors import ApiErrorCode, ConflictError, NotFoundError
from murmur.logging import get_logger
from murmur.schemas.providers import (
    ModelDescriptorCreate,
    ModelDescriptorOut,
    ModelDescriptorUpdate,
    ProviderCreate,
    ProviderOut,
    ProviderUpdate,
)
from murmur.services.crypto import encrypt_api_key
from murmur.services.defaults import DefaultKind, set_default

logger = get_logger(__name__)


def _get_provider_or_404(db: Session, provider_id: str) -> ProviderCredential:
    provider = db.get(ProviderCredential, provider_id)
    if provider is None:
        raise NotFoundError(ApiErrorCode.E_PROVIDER_NOT_FOUND, "Provider not found")
    return provider


def _get_model_or_404(db: Session, model_id: str) -> ModelDescriptor:
    model = db.get(ModelDescriptor, model_id)
    if model is None:
        raise NotFoundError(ApiErrorCode.E_MODEL_NOT_FOUND, "Model not found")
    return model


def registry_model_id(provider_id: str, model_sdk_id: str) -> str:
    return f"{provider_id}:{model_sdk_id}"


# =============================================================================
# Providers
# =============================================================================


def list_providers(db: Session) -> list[ProviderOut]:
    providers = db.scalars(select(ProviderCredential).order_by(ProviderCredential.name)).all()
    return [ProviderOut.model_validate(p) for p in providers]


def create_provider(db: Session, body: ProviderCreate) -> ProviderOut:
    """Store a provider credential with its key sealed.

    Raises:
        ConflictError(E_PROVIDER_EXISTS): A provider with this id or name exists.
    """
    existing = db.scalar(
        select(ProviderCredential.id).where(
            or_(ProviderCredential.id == body.id, ProviderCredential.name == body.name)
        )
    )
    if existing is not None:
        raise ConflictError(ApiErrorCode.E_PROVIDER_EXISTS, "Provider already exists")

    ciphertext, nonce, fingerprint = encrypt_api_key(body.api_key)
    provider = ProviderCredential(
        id=body.id,
        name=body.name,
        encrypted_api_key=ciphertext,
        key_nonce=nonce,
        key_fingerprint=fingerprint,
        base_url=body.base_url,
        image_url=body.image_url,
    )

    try:
        with transaction(db):
            db.add(provider)
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_PROVIDER_EXISTS, "Provider already exists") from None

    logger.info("provider_created", provider_id=provider.id, fingerprint=fingerprint)

    if body.is_default:
        provider = set_default(db, DefaultKind.PROVIDER, provider.id)
    return ProviderOut.model_validate(provider)


def update_provider(db: Session, provider_id: str, body: ProviderUpdate) -> ProviderOut:
    """Apply a partial update. A new api_key replaces the sealed key.

    Raises:
        NotFoundError(E_PROVIDER_NOT_FOUND): Unknown provider.
        ConflictError(E_PROVIDER_EXISTS): The new name is taken.
    """
    provider = _get_provider_or_404(db, provider_id)
    fields = body.model_dump(exclude_unset=True)

    try:
        with transaction(db):
            for attr in ("name", "base_url", "image_url"):
                if attr in fields:
                    setattr(provider, attr, fields[attr])
            if fields.get("api_key"):
                ciphertext, nonce, fingerprint = encrypt_api_key(fields["api_key"])
                provider.encrypted_api_key = ciphertext
                provider.key_nonce = nonce
                provider.key_fingerprint = fingerprint
            if fields.get("is_default") is False:
                provider.is_default = False
            provider.updated_at = utcnow()
            db.flush()
    except IntegrityError:
        raise ConflictError(
            ApiErrorCode.E_PROVIDER_EXISTS, "Provider name already in use"
        ) from None

    logger.info(
        "provider_updated",
        provider_id=provider_id,
        key_rotated=bool(fields.get("api_key")),
    )

    if fields.get("is_default"):
        provider = set_default(db, DefaultKind.PROVIDER, provider_id)
    return ProviderOut.model_validate(provider)


def delete_provider(db: Session, provider_id: str) -> None:
    """Delete a provider and every model it offers.

    Raises:
        NotFoundError(E_PROVIDER_NOT_FOUND): Unknown provider.
    """
    provider = _get_provider_or_404(db, provider_id)
    with transaction(db):
        db.delete(provider)
    logger.info("provider_deleted", provider_id=provider_id)


def set_default_provider(db: Session, provider_id: str) -> ProviderOut:
    provider = set_default(db, DefaultKind.PROVIDER, provider_id)
    return ProviderOut.model_validate(provider)


# =============================================================================
# Models
# =============================================================================


def list_models(db: Session, provider_id: str | None = None) -> list[ModelDescriptorOut]:
    """List model descriptors, optionally for one provider.

    Raises:
        NotFoundError(E_PROVIDER_NOT_FOUND): provider_id given but unknown.
    """
    query = select(ModelDescriptor).order_by(ModelDescriptor.provider_id, ModelDescriptor.name)
    if provider_id is not None:
        _get_provider_or_404(db, provider_id)
        query = query.where(ModelDescriptor.provider_id == provider_id)
    return [ModelDescriptorOut.model_validate(m) for m in db.scalars(query).all()]


def create_model(db: Session, body: ModelDescriptorCreate) -> ModelDescriptorOut:
    """Register a model under an existing provider.

    The registry id is derived as "<provider_id>:<model_sdk_id>".

    Raises:
        NotFoundError(E_PROVIDER_NOT_FOUND): Unknown provider.
        ConflictError(E_MODEL_EXISTS): Model already registered.
    """
    _get_provider_or_404(db, body.provider_id)
    model_id = registry_model_id(body.provider_id, body.model_sdk_id)
    if db.get(ModelDescriptor, model_id) is not None:
        raise ConflictError(ApiErrorCode.E_MODEL_EXISTS, "Model already exists")

    model = ModelDescriptor(
        id=model_id,
        provider_id=body.provider_id,
        model_sdk_id=body.model_sdk_id,
        name=body.name,
        is_enabled=body.is_enabled,
    )
    try:
        with transaction(db):
            db.add(model)
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_MODEL_EXISTS, "Model already exists") from None

    logger.info("model_created", model_id=model_id)

    if body.is_default:
        model = set_default(db, DefaultKind.MODEL, model_id)
    return ModelDescriptorOut.model_validate(model)


def update_model(db: Session, model_id: str, body: ModelDescriptorUpdate) -> ModelDescriptorOut:
    """Rename, enable/disable, or make a model the default.

    Raises:
        NotFoundError(E_MODEL_NOT_FOUND): Unknown model.
    """
    model = _get_model_or_404(db, model_id)
    fields = body.model_dump(exclude_unset=True)

    with transaction(db):
        if fields.get("name") is not None:
            model.name = fields["name"]
        if fields.get("is_enabled") is not None:
            model.is_enabled = fields["is_enabled"]
        if fields.get("is_default") is False:
            model.is_default = False
        model.updated_at = utcnow()

    logger.info("model_updated", model_id=model_id)

    if fields.get("is_default"):
        model = set_default(db, DefaultKind.MODEL, model_id)
    return ModelDescriptorOut.model_validate(model)


def delete_model(db: Session, model_id: str) -> None:
    model = _get_model_or_404(db, model_id)
    with transaction(db):
        db.delete(model)
    logger.info("model_deleted", model_id=model_id)


def set_default_model(db: Session, model_id: str) -> ModelDescriptorOut:
    model = set_default(db, DefaultKind.MODEL, model_id)
    return ModelDescriptorOut.model_validate(model)
