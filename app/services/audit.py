"""Audit trail for session and node lifecycle events.

Entries are staged on the caller's database session so an audit row commits
or rolls back together with the change it records.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.request_context import get_request_id
from app.db.models import AuditLog

AuditEntity = Literal["life_session", "life_node"]
AuditAction = Literal["create", "update", "finalize", "delete"]


def log_audit_entry(
    db: Session,
    entity_type: AuditEntity,
    entity_id: uuid.UUID,
    action: AuditAction,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        request_id=get_request_id(),
        old_value=old_value,
        new_value=new_value,
    )
    db.add(entry)
    return entry


def audit_trail(db: Session, entity_id: uuid.UUID) -> list[AuditLog]:
    """Entries for one entity, oldest first."""
    stmt = (
        select(AuditLog)
        .where(AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at, AuditLog.audit_id)
    )
    return list(db.execute(stmt).scalars().all())
