"""Agent and user settings routes.

Routes are transport-only: each calls exactly one service function.

- GET /agents: List the viewer's agents
- POST /agents: Create an agent
- GET /agents/default: The viewer's default agent, or null
- GET/PUT/DELETE /agents/{id}: Read, partially update, delete
- POST /agents/{id}/set-default: Make it the viewer's default agent
- GET/PUT /settings: The viewer's client settings object

All routes require authentication.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from murmur.api.deps import get_db
from murmur.auth.middleware import Viewer, get_viewer
from murmur.responses import success_response
from murmur.schemas.agents import AgentCreate, AgentUpdate, UserSettingsOut, UserSettingsUpdate
from murmur.services import agents as agents_service
from murmur.services import user_settings as user_settings_service

router = APIRouter(tags=["agents"])


# =============================================================================
# Agent Endpoints
# =============================================================================


@router.get("/agents")
def list_agents(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    agents = agents_service.list_agents(db=db, viewer_id=viewer.user_id)
    return success_response([a.model_dump(mode="json") for a in agents])


@router.post("/agents", status_code=201)
def create_agent(
    body: AgentCreate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create an agent.

    Errors:
        E_AGENT_EXISTS (409): The viewer already has an agent with this name
    """
    agent = agents_service.create_agent(db=db, viewer_id=viewer.user_id, body=body)
    return success_response(agent.model_dump(mode="json"))


@router.get("/agents/default")
def get_default_agent(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """The viewer's default agent; {"data": null} when none is set."""
    agent = agents_service.get_default_agent_out(db=db, viewer_id=viewer.user_id)
    return success_response(agent.model_dump(mode="json") if agent is not None else None)


@router.get("/agents/{agent_id}")
def get_agent(
    agent_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    agent = agents_service.get_agent(db=db, viewer_id=viewer.user_id, agent_id=agent_id)
    return success_response(agent.model_dump(mode="json"))


@router.put("/agents/{agent_id}")
def update_agent(
    agent_id: UUID,
    body: AgentUpdate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Partially update an agent.

    Errors:
        E_AGENT_NOT_FOUND (404): Unknown agent or not owned by viewer
        E_AGENT_EXISTS (409): New name already used by another agent
    """
    agent = agents_service.update_agent(
        db=db, viewer_id=viewer.user_id, agent_id=agent_id, body=body
    )
    return success_response(agent.model_dump(mode="json"))


@router.delete("/agents/{agent_id}", status_code=204)
def delete_agent(
    agent_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    agents_service.delete_agent(db=db, viewer_id=viewer.user_id, agent_id=agent_id)
    return Response(status_code=204)


@router.post("/agents/{agent_id}/set-default")
def set_default_agent(
    agent_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Make this agent the viewer's only default agent.

    Errors:
        E_AGENT_NOT_FOUND (404): Unknown agent or not owned by viewer;
            previous default kept
    """
    agent = agents_service.set_default_agent(db=db, viewer_id=viewer.user_id, agent_id=agent_id)
    return success_response(agent.model_dump(mode="json"))


# =============================================================================
# User Settings Endpoints
# =============================================================================


@router.get("/settings", tags=["settings"])
def read_user_settings(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    settings = user_settings_service.get_user_settings(db=db, viewer_id=viewer.user_id)
    return success_response(UserSettingsOut(settings=settings).model_dump(mode="json"))


@router.put("/settings", tags=["settings"])
def replace_user_settings(
    body: UserSettingsUpdate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Replace the viewer's settings object."""
    settings = user_settings_service.update_user_settings(
        db=db, viewer_id=viewer.user_id, settings=body.settings
    )
    return success_response(UserSettingsOut(settings=settings).model_dump(mode="json"))
