"""Read-only view of the model catalogue for clients.

Feeds the model picker: enabled models grouped under their provider, plus
the current default model and default provider ids.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from murmur.db.models import ProviderCredential
from murmur.schemas.providers import ModelRegistryOut, RegistryModelOut, RegistryProviderOut
from murmur.services.defaults import get_default_model, get_default_provider


def get_model_registry(db: Session) -> ModelRegistryOut:
    """Build the grouped registry.

    Only enabled models are listed and providers left with no enabled model
    are omitted. Providers are ordered by name, models by name within their
    provider.
    """
    providers = db.scalars(
        select(ProviderCredential)
        .options(selectinload(ProviderCredential.models))
        .order_by(ProviderCredential.name)
    ).all()

    available: list[RegistryProviderOut] = []
    for provider in providers:
        models = [
            RegistryModelOut(id=m.id, name=m.name)
            for m in sorted(provider.models, key=lambda m: m.name)
            if m.is_enabled
        ]
        if not models:
            continue
        available.append(
            RegistryProviderOut(
                id=provider.id,
                name=provider.name,
                image_url=provider.image_url,
                base_url=provider.base_url,
                models=models,
            )
        )

    default_model = get_default_model(db)
    default_provider = get_default_provider(db)
    return ModelRegistryOut(
        available_models=available,
        default_model_id=default_model.id if default_model else None,
        default_provider_id=default_provider.id if default_provider else None,
    )
