from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog


def record_audit(
    db: Session,
    *,
    actor_id: str | None,
    action: str,
    entity: str,
    entity_id: int | None,
    at: datetime,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Adds the entry to the SAME transaction as the state change it describes:
    it is committed or rolled back together with it.
    """
    db.add(
        AuditLog(
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            details=details,
            timestamp_utc=at,
        )
    )
