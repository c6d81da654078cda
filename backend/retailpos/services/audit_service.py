# Overview: Service-layer audit sink; fire-and-forget AuditLog writes.

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog

logger = logging.getLogger(__name__)

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_CANCEL = "CANCEL"


def _dump(snapshot: Any) -> str | None:
    if snapshot is None:
        return None
    return json.dumps(snapshot, default=str, sort_keys=True)


def record(
    user_id: str | None,
    action: str,
    entity: str,
    entity_id: str | None = None,
    before: Any = None,
    after: Any = None,
) -> AuditLog | None:
    """
    Append an audit row in its own commit.

    Must be called after the business transaction has committed. A failure
    here is rolled back and logged; it never reaches the caller.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_json=_dump(before),
        after_json=_dump(after),
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write audit log %s %s %s", action, entity, entity_id)
        return None
    return entry


class AuditSink:
    """Audit collaborator handed to the sale engine. Writes through record()."""

    def record(self, user_id, action, entity, entity_id=None, before=None, after=None):
        return record(user_id, action, entity, entity_id, before=before, after=after)


def list_for_entity(entity: str, entity_id: str) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(entity=entity, entity_id=entity_id)
        .order_by(AuditLog.created_at.asc())
        .all()
    )
