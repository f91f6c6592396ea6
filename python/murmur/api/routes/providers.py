"""Provider credential routes.

Routes are transport-only: each calls exactly one service function.

- GET /providers: List stored providers (fingerprints only, no secrets)
- POST /providers: Store a provider with its API key sealed
- PUT /providers/{id}: Partial update, optional key rotation
- DELETE /providers/{id}: Delete a provider and its models
- POST /providers/{id}/set-default: Make it the default provider

All routes require authentication.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from murmur.api.deps import get_db
from murmur.auth.middleware import Viewer, get_viewer
from murmur.responses import success_response
from murmur.schemas.providers import ProviderCreate, ProviderUpdate
from murmur.services import providers as providers_service

router = APIRouter(tags=["providers"])


@router.get("/providers")
def list_providers(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List providers ordered by name.

    Returns:
        {"data": [ProviderOut, ...]}
    """
    providers = providers_service.list_providers(db=db)
    return success_response([p.model_dump(mode="json") for p in providers])


@router.post("/providers", status_code=201)
def create_provider(
    body: ProviderCreate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Store a provider credential.

    Errors:
        E_PROVIDER_EXISTS (409): Same id or name already stored
        E_INVALID_REQUEST (400): Unknown provider id or malformed key
    """
    provider = providers_service.create_provider(db=db, body=body)
    return success_response(provider.model_dump(mode="json"))


@router.put("/providers/{provider_id}")
def update_provider(
    provider_id: str,
    body: ProviderUpdate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    provider = providers_service.update_provider(db=db, provider_id=provider_id, body=body)
    return success_response(provider.model_dump(mode="json"))


@router.delete("/providers/{provider_id}", status_code=204)
def delete_provider(
    provider_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    providers_service.delete_provider(db=db, provider_id=provider_id)
    return Response(status_code=204)


@router.post("/providers/{provider_id}/set-default")
def set_default_provider(
    provider_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Make this provider the only default provider.

    Errors:
        E_PROVIDER_NOT_FOUND (404): Unknown provider; previous default kept
    """
    provider = providers_service.set_default_provider(db=db, provider_id=provider_id)
    return success_response(provider.model_dump(mode="json"))


@router.get("/providers/{provider_id}/models")
def list_provider_models(
    provider_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    models = providers_service.list_models(db=db, provider_id=provider_id)
    return success_response([m.model_dump(mode="json") for m in models])
