"""Per-user client settings.

One JSON object per user. The server does not interpret it; the desktop
client stores whatever preferences it needs there. A user who never saved
settings reads back an empty object.
"""

from typing import Any

from sqlalchemy.orm import Session

from murmur.db.models import UserSettings, utcnow
from murmur.db.session import transaction
from murmur.logging import get_logger

logger = get_logger(__name__)


def get_user_settings(db: Session, viewer_id: str) -> dict[str, Any]:
    row = db.get(UserSettings, viewer_id)
    return dict(row.settings) if row is not None else {}


def update_user_settings(db: Session, viewer_id: str, settings: dict[str, Any]) -> dict[str, Any]:
    """Insert or replace the viewer's settings object."""
    with transaction(db):
        row = db.get(UserSettings, viewer_id)
        if row is None:
            row = UserSettings(owner_user_id=viewer_id, settings=settings)
            db.add(row)
        else:
            row.settings = settings
            row.updated_at = utcnow()

    logger.info("user_settings_updated", keys=len(settings))
    return dict(row.settings)
