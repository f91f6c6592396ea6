"""Default model / provider / agent selection.

At most one ModelDescriptor and at most one ProviderCredential may be the
default at any time (the two are independent). Agents belong to a user, so
the rule for them is per owner: each user has at most one default agent.

set_default() is the only code path that sets is_default = true: it clears
every default of the given kind (for agents, only the owner's) and then
marks the requested row, inside one transaction. If the row does not exist
the transaction is rolled back, so the previous default survives.

Concurrent calls for the same kind are serialized by the database; the last
transaction to commit wins. The partial unique indexes on is_default reject
any write that would leave two defaults behind.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from murmur.db.models import Agent, ModelDescriptor, ProviderCredential, utcnow
from murmur.db.session import transaction
from murmur.errors import ApiErrorCode, NotFoundError
from murmur.logging import get_logger

logger = get_logger(__name__)


class DefaultKind(str, Enum):
    """Which table a default selection applies to."""

    MODEL = "model"
    PROVIDER = "provider"
    AGENT = "agent"


_KIND_TABLES = {
    DefaultKind.MODEL: (ModelDescriptor, ApiErrorCode.E_MODEL_NOT_FOUND, "Model not found"),
    DefaultKind.PROVIDER: (
        ProviderCredential,
        ApiErrorCode.E_PROVIDER_NOT_FOUND,
        "Provider not found",
    ),
    DefaultKind.AGENT: (Agent, ApiErrorCode.E_AGENT_NOT_FOUND, "Agent not found"),
}

# Kinds whose default is chosen per owner rather than globally
_OWNED_KINDS = frozenset({DefaultKind.AGENT})


def set_default(
    db: Session, kind: DefaultKind, id: str | UUID, owner_user_id: str | None = None
) -> ModelDescriptor | ProviderCredential | Agent:
    """Make row `id` the only default of its kind.

    Args:
        db: Database session.
        kind: Which table to update.
        id: Model registry id, provider SDK id or agent id.
        owner_user_id: Required for DefaultKind.AGENT; scopes both the clear
            and the lookup to this owner.

    Returns:
        The updated row.

    Raises:
        NotFoundError(E_MODEL_NOT_FOUND | E_PROVIDER_NOT_FOUND | E_AGENT_NOT_FOUND):
            No row with that id (or, for agents, none owned by owner_user_id);
            nothing is changed.
    """
    model_cls, not_found_code, not_found_message = _KIND_TABLES[kind]
    owned = kind in _OWNED_KINDS
    if owned and owner_user_id is None:
        raise ValueError(f"owner_user_id is required for {kind.value} defaults")
    now = utcnow()

    clear = update(model_cls).where(model_cls.is_default.is_(True))
    mark = update(model_cls).where(model_cls.id == id)
    if owned:
        clear = clear.where(model_cls.owner_user_id == owner_user_id)
        mark = mark.where(model_cls.owner_user_id == owner_user_id)

    with transaction(db):
        db.execute(clear.values(is_default=False, updated_at=now))
        result = db.execute(mark.values(is_default=True, updated_at=now))
        if result.rowcount == 0:
            # Raising inside the transaction rolls back the clear as well
            raise NotFoundError(not_found_code, not_found_message)

    row = db.get(model_cls, id, populate_existing=True)
    logger.info("default_selected", kind=kind.value, id=str(id))
    return row


def get_default_model(db: Session) -> ModelDescriptor | None:
    return db.scalar(select(ModelDescriptor).where(ModelDescriptor.is_default.is_(True)))


def get_default_provider(db: Session) -> ProviderCredential | None:
    return db.scalar(select(ProviderCredential).where(ProviderCredential.is_default.is_(True)))


def get_default_agent(db: Session, owner_user_id: str) -> Agent | None:
    return db.scalar(
        select(Agent).where(Agent.owner_user_id == owner_user_id, Agent.is_default.is_(True))
    )
