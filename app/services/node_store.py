"""Persistence for life nodes and the session counters derived from them.

Every method runs in its own short transaction so the store can be shared
by request handlers and background workers. Results are returned as
detached pydantic records, never as live ORM rows.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import EntityNotFoundError, NodeStateError
from app.db.models import LifeNode, LifeSession
from app.db.session import get_sessionmaker, session_scope
from app.services.audit import audit_trail, log_audit_entry

GENERATING = "generating"
COMPLETED = "completed"
ERROR = "error"
TERMINAL_STATUSES = frozenset({COMPLETED, ERROR})


class NodeRecord(BaseModel):
    model_config = {"from_attributes": True}

    node_id: uuid.UUID
    session_id: uuid.UUID
    parent_node_id: uuid.UUID | None
    depth: int
    sibling_order: int
    choice: dict
    metrics: dict | None = None
    narrative: dict | None = None
    media: dict | None = None
    status: str
    error_message: str | None = None
    processing_time_ms: int | None = None
    child_node_ids: list[str] = Field(default_factory=list)
    version: int = 1
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class SessionRecord(BaseModel):
    model_config = {"from_attributes": True}

    session_id: uuid.UUID
    title: str
    base_context: dict = Field(default_factory=dict)
    user_preferences: dict = Field(default_factory=dict)
    root_node_id: uuid.UUID | None = None
    total_nodes: int = 0
    max_depth: int = 0
    status: str = "active"


class NodeStore:
    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or get_sessionmaker()

    def get_session(self, session_id: uuid.UUID) -> SessionRecord | None:
        with session_scope(self._session_factory) as db:
            row = db.get(LifeSession, session_id)
            return SessionRecord.model_validate(row) if row is not None else None

    def get_node(self, node_id: uuid.UUID) -> NodeRecord | None:
        with session_scope(self._session_factory) as db:
            row = db.get(LifeNode, node_id)
            return NodeRecord.model_validate(row) if row is not None else None

    def count_children(self, session_id: uuid.UUID, parent_node_id: uuid.UUID | None) -> int:
        """Siblings under `parent_node_id`; roots of a session count each other."""
        parent_clause = (
            LifeNode.parent_node_id.is_(None)
            if parent_node_id is None
            else LifeNode.parent_node_id == parent_node_id
        )
        with session_scope(self._session_factory) as db:
            return db.execute(
                select(func.count(LifeNode.node_id)).where(LifeNode.session_id == session_id, parent_clause)
            ).scalar_one()

    def count_nodes(self, session_id: uuid.UUID) -> int:
        with session_scope(self._session_factory) as db:
            return db.execute(
                select(func.count(LifeNode.node_id)).where(LifeNode.session_id == session_id)
            ).scalar_one()

    def list_ancestors(self, node_id: uuid.UUID) -> list[NodeRecord]:
        """The path from the root down to `node_id`, inclusive."""
        path: list[NodeRecord] = []
        seen: set[uuid.UUID] = set()
        with session_scope(self._session_factory) as db:
            current = db.get(LifeNode, node_id)
            while current is not None and current.node_id not in seen:
                seen.add(current.node_id)
                path.append(NodeRecord.model_validate(current))
                if current.parent_node_id is None:
                    break
                current = db.get(LifeNode, current.parent_node_id)
        path.reverse()
        return path

    def create_node(self, **fields: Any) -> NodeRecord:
        with session_scope(self._session_factory) as db:
            row = LifeNode(status=GENERATING, **fields)
            db.add(row)
            db.flush()
            if row.parent_node_id is None:
                db.execute(
                    update(LifeSession)
                    .where(LifeSession.session_id == row.session_id, LifeSession.root_node_id.is_(None))
                    .values(root_node_id=row.node_id)
                    .execution_options(synchronize_session=False)
                )
            log_audit_entry(db, "life_node", row.node_id, "create", new_value={"choice": row.choice})
            db.flush()
            db.refresh(row)
            return NodeRecord.model_validate(row)

    def update_node(self, node_id: uuid.UUID, **fields: Any) -> NodeRecord:
        """Move a generating node to its terminal state; terminal nodes are immutable."""
        with session_scope(self._session_factory) as db:
            result = db.execute(
                update(LifeNode)
                .where(LifeNode.node_id == node_id, LifeNode.status == GENERATING)
                .values(version=LifeNode.version + 1, **fields)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = db.get(LifeNode, node_id)
                if row is None:
                    raise EntityNotFoundError("LifeNode", node_id)
                raise NodeStateError(
                    f"Node {node_id} is already {row.status}",
                    detail="Node already finalized",
                )
            log_audit_entry(
                db,
                "life_node",
                node_id,
                "finalize",
                old_value={"status": GENERATING},
                new_value={"status": fields.get("status"), "error_message": fields.get("error_message")},
            )
            row = db.get(LifeNode, node_id, populate_existing=True)
            return NodeRecord.model_validate(row)

    def history(self, entity_id: uuid.UUID) -> list[dict[str, Any]]:
        with session_scope(self._session_factory) as db:
            return [
                {"action": entry.action, "request_id": entry.request_id, "at": entry.created_at}
                for entry in audit_trail(db, entity_id)
            ]

    def refresh_child_index(self, parent_node_id: uuid.UUID) -> list[str]:
        """Rebuild the parent's child id list from the children's back-references."""
        with session_scope(self._session_factory) as db:
            child_ids = [
                str(child_id)
                for child_id in db.execute(
                    select(LifeNode.node_id)
                    .where(LifeNode.parent_node_id == parent_node_id)
                    .order_by(LifeNode.sibling_order, LifeNode.created_at)
                ).scalars()
            ]
            db.execute(
                update(LifeNode)
                .where(LifeNode.node_id == parent_node_id)
                .values(child_node_ids=child_ids)
                .execution_options(synchronize_session=False)
            )
            return child_ids

    def update_session_aggregates(self, session_id: uuid.UUID) -> None:
        """Recompute total_nodes and max_depth in one statement so concurrent writers never lose a count."""
        node_count = (
            select(func.count(LifeNode.node_id)).where(LifeNode.session_id == session_id).scalar_subquery()
        )
        deepest = (
            select(func.coalesce(func.max(LifeNode.depth), 0))
            .where(LifeNode.session_id == session_id)
            .scalar_subquery()
        )
        with session_scope(self._session_factory) as db:
            db.execute(
                update(LifeSession)
                .where(LifeSession.session_id == session_id)
                .values(total_nodes=node_count, max_depth=deepest)
                .execution_options(synchronize_session=False)
            )

    def delete_session(self, session_id: uuid.UUID) -> bool:
        with session_scope(self._session_factory) as db:
            if db.get(LifeSession, session_id) is None:
                return False
            db.execute(
                delete(LifeNode)
                .where(LifeNode.session_id == session_id)
                .execution_options(synchronize_session=False)
            )
            db.execute(
                delete(LifeSession)
                .where(LifeSession.session_id == session_id)
                .execution_options(synchronize_session=False)
            )
            log_audit_entry(db, "life_session", session_id, "delete")
            return True
