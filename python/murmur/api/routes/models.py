"""Model descriptor routes.

Routes are transport-only: each calls exactly one service function.

Model ids are registry ids ("<provider_id>:<model_sdk_id>") and may contain
slashes, so every path parameter uses the `path` converter.

- GET /models: List all model descriptors
- POST /models: Register a model under a stored provider
- PUT /models/{id}: Rename, enable/disable, or make default
- DELETE /models/{id}: Remove a model
- POST /models/{id}/set-default: Make it the default model
- GET /model-registry: Enabled models grouped by provider, plus defaults

All routes require authentication.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from murmur.api.deps import get_db
from murmur.auth.middleware import Viewer, get_viewer
from murmur.responses import success_response
from murmur.schemas.providers import ModelDescriptorCreate, ModelDescriptorUpdate
from murmur.services import model_registry as model_registry_service
from murmur.services import providers as providers_service

router = APIRouter(tags=["models"])


@router.get("/models")
def list_models(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List every model descriptor, enabled or not.

    Returns:
        {"data": [ModelDescriptorOut, ...]}
    """
    models = providers_service.list_models(db=db)
    return success_response([m.model_dump(mode="json") for m in models])


@router.post("/models", status_code=201)
def create_model(
    body: ModelDescriptorCreate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Register a model.

    Errors:
        E_PROVIDER_NOT_FOUND (404): Provider is not stored
        E_MODEL_EXISTS (409): Model already registered for this provider
    """
    model = providers_service.create_model(db=db, body=body)
    return success_response(model.model_dump(mode="json"))


@router.get("/model-registry")
def get_model_registry(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Model picker data.

    Returns:
        {"data": {"available_models": [...], "default_model_id": ..., "default_provider_id": ...}}
    """
    registry = model_registry_service.get_model_registry(db=db)
    return success_response(registry.model_dump(mode="json"))


@router.post("/models/{model_id:path}/set-default")
def set_default_model(
    model_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Make this model the only default model.

    Errors:
        E_MODEL_NOT_FOUND (404): Unknown model; previous default kept
    """
    model = providers_service.set_default_model(db=db, model_id=model_id)
    return success_response(model.model_dump(mode="json"))


@router.put("/models/{model_id:path}")
def update_model(
    model_id: str,
    body: ModelDescriptorUpdate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    model = providers_service.update_model(db=db, model_id=model_id, body=body)
    return success_response(model.model_dump(mode="json"))


@router.delete("/models/{model_id:path}", status_code=204)
def delete_model(
    model_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    providers_service.delete_model(db=db, model_id=model_id)
    return Response(status_code=204)
