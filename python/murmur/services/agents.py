"""Agents: named system prompts owned by one user.

All operations:
- Enforce owner-only access
- Use E_AGENT_NOT_FOUND for both missing and foreign rows (prevent probing)

Making an agent the default is delegated to defaults.set_default, so the
one-default-per-owner rule has exactly one writer.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from murmur.db.models import Agent, utcnow
from murmur.db.session import transaction
from murmur.errors import ApiErrorCode, ConflictError, NotFoundError
from murmur.logging import get_logger
from murmur.schemas.agents import AgentCreate, AgentOut, AgentUpdate
from murmur.services.defaults import DefaultKind, get_default_agent, set_default

logger = get_logger(__name__)


def get_agent_for_viewer_or_404(db: Session, viewer_id: str, agent_id: UUID) -> Agent:
    """Load an agent and verify ownership.

    Raises:
        NotFoundError(E_AGENT_NOT_FOUND): Agent doesn't exist OR viewer is not
            the owner.
    """
    agent = db.get(Agent, agent_id)
    if agent is None or agent.owner_user_id != viewer_id:
        raise NotFoundError(ApiErrorCode.E_AGENT_NOT_FOUND, "Agent not found")
    return agent


def _name_taken(db: Session, viewer_id: str, name: str, exclude_id: UUID | None = None) -> bool:
    query = select(Agent.id).where(Agent.owner_user_id == viewer_id, Agent.name == name)
    if exclude_id is not None:
        query = query.where(Agent.id != exclude_id)
    return db.scalar(query) is not None


def list_agents(db: Session, viewer_id: str) -> list[AgentOut]:
    """The viewer's agents, most recently updated first."""
    agents = db.scalars(
        select(Agent)
        .where(Agent.owner_user_id == viewer_id)
        .order_by(Agent.updated_at.desc(), Agent.id.desc())
    ).all()
    return [AgentOut.model_validate(a) for a in agents]


def get_agent(db: Session, viewer_id: str, agent_id: UUID) -> AgentOut:
    return AgentOut.model_validate(get_agent_for_viewer_or_404(db, viewer_id, agent_id))


def get_default_agent_out(db: Session, viewer_id: str) -> AgentOut | None:
    agent = get_default_agent(db, viewer_id)
    return AgentOut.model_validate(agent) if agent is not None else None


def create_agent(db: Session, viewer_id: str, body: AgentCreate) -> AgentOut:
    """Create an agent for the viewer.

    Raises:
        ConflictError(E_AGENT_EXISTS): The viewer already has an agent with
            this name.
    """
    if _name_taken(db, viewer_id, body.name):
        raise ConflictError(ApiErrorCode.E_AGENT_EXISTS, "Agent name already exists")

    agent = Agent(
        owner_user_id=viewer_id,
        name=body.name,
        description=body.description,
        system_prompt=body.system_prompt,
    )
    try:
        with transaction(db):
            db.add(agent)
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_AGENT_EXISTS, "Agent name already exists") from None

    logger.info("agent_created", agent_id=str(agent.id))

    if body.is_default:
        agent = set_default(db, DefaultKind.AGENT, agent.id, owner_user_id=viewer_id)
    return AgentOut.model_validate(agent)


def update_agent(db: Session, viewer_id: str, agent_id: UUID, body: AgentUpdate) -> AgentOut:
    """Apply a partial update.

    Raises:
        NotFoundError(E_AGENT_NOT_FOUND): Unknown or foreign agent.
        ConflictError(E_AGENT_EXISTS): The new name is taken by another agent.
    """
    agent = get_agent_for_viewer_or_404(db, viewer_id, agent_id)
    fields = body.model_dump(exclude_unset=True)

    if fields.get("name") and _name_taken(db, viewer_id, fields["name"], exclude_id=agent_id):
        raise ConflictError(ApiErrorCode.E_AGENT_EXISTS, "Agent name already exists")

    try:
        with transaction(db):
            for attr in ("name", "system_prompt"):
                if fields.get(attr) is not None:
                    setattr(agent, attr, fields[attr])
            if "description" in fields:
                agent.description = fields["description"]
            if fields.get("is_default") is False:
                agent.is_default = False
            agent.updated_at = utcnow()
            db.flush()
    except IntegrityError:
        raise ConflictError(ApiErrorCode.E_AGENT_EXISTS, "Agent name already exists") from None

    logger.info("agent_updated", agent_id=str(agent_id))

    if fields.get("is_default"):
        agent = set_default(db, DefaultKind.AGENT, agent_id, owner_user_id=viewer_id)
    return AgentOut.model_validate(agent)


def delete_agent(db: Session, viewer_id: str, agent_id: UUID) -> None:
    """Delete an agent. Deleting the default leaves the viewer with none.

    Raises:
        NotFoundError(E_AGENT_NOT_FOUND): Unknown or foreign agent.
    """
    agent = get_agent_for_viewer_or_404(db, viewer_id, agent_id)
    with transaction(db):
        db.delete(agent)
    logger.info("agent_deleted", agent_id=str(agent_id))


def set_default_agent(db: Session, viewer_id: str, agent_id: UUID) -> AgentOut:
    agent = set_default(db, DefaultKind.AGENT, agent_id, owner_user_id=viewer_id)
    return AgentOut.model_validate(agent)
