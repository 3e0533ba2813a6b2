"""Node lifecycle: validation, placeholder row, pipeline run, finalization.

A node is persisted in `generating` before any collaborator is called and
leaves that state exactly once, to `completed` or `error`. Session counters
and the parent's child index are rebuilt from the node rows after every
write so concurrent creations converge on the same numbers.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from pydantic import BaseModel

from app.core.exceptions import EntityNotFoundError, ValidationError
from app.core.metrics import record_node_finalization
from app.core.request_context import log_context
from app.core.settings import settings
from app.graphs.choice_normalizer import ChoiceNormalizer
from app.graphs.metrics_blender import NEUTRAL_SCORE, MetricsBlender
from app.graphs.metrics_resolver import MetricsResolver
from app.graphs.narrative import NarrativeCoordinator
from app.graphs.pipeline import run_node_pipeline
from app.graphs.schemas import (
    BaseContext,
    Choice,
    CompositeIndices,
    NodeMetrics,
    ParentSnapshot,
    RawChoice,
    UserPreferences,
)
from app.services.node_store import COMPLETED, ERROR, TERMINAL_STATUSES, NodeRecord, NodeStore, SessionRecord

logger = logging.getLogger(__name__)

PROCESSING = "Processing..."
ERROR_MESSAGE_MAX_CHARS = 500


class NodeCreateRequest(BaseModel):
    session_id: uuid.UUID
    parent_node_id: uuid.UUID | None = None
    choice: RawChoice
    preferences: UserPreferences | None = None


def placeholder_metrics() -> dict[str, Any]:
    indices = {name: NEUTRAL_SCORE for name in CompositeIndices.model_fields}
    return {
        "city": {"name": PROCESSING, "country": PROCESSING},
        "occupation": {
            "name": PROCESSING,
            "category": PROCESSING,
            "skills_required": [],
            "tasks_typical": [],
        },
        "finances": {"col_index": 1.0, "currency": "USD"},
        **indices,
    }


def placeholder_narrative() -> dict[str, Any]:
    return {
        "summary": "Generating narrative...",
        "chapters": [],
        "milestones": [],
        "tone": "balanced",
        "confidence_score": 0.5,
        "disclaimers": [],
    }


def placeholder_media() -> dict[str, Any]:
    return {
        "cover_photo": {
            "url": "https://via.placeholder.com/800x600/4F46E5/FFFFFF?text=Generating...",
            "alt": "Generating cover image...",
            "credit": "Placeholder Image",
            "source": "placeholder",
        }
    }


class NodeAssembler:
    def __init__(
        self,
        store: NodeStore,
        normalizer: ChoiceNormalizer,
        resolver: MetricsResolver,
        blender: MetricsBlender,
        narrator: NarrativeCoordinator,
        *,
        max_depth: int | None = None,
        max_nodes_per_session: int | None = None,
    ) -> None:
        self.store = store
        self._normalizer = normalizer
        self._resolver = resolver
        self._blender = blender
        self._narrator = narrator
        self._max_depth = max_depth if max_depth is not None else settings.max_node_depth
        self._max_nodes = max_nodes_per_session if max_nodes_per_session is not None else settings.max_nodes_per_session

    def create_node(self, request: NodeCreateRequest) -> NodeRecord:
        placeholder = self.prepare(request)
        return self.generate(placeholder.node_id, preferences=request.preferences)

    def prepare(self, request: NodeCreateRequest) -> NodeRecord:
        """Validate the request and persist the `generating` placeholder."""
        session = self.store.get_session(request.session_id)
        if session is None:
            raise EntityNotFoundError("LifeSession", request.session_id)

        depth = 0
        if request.parent_node_id is not None:
            parent = self.store.get_node(request.parent_node_id)
            if parent is None or parent.session_id != session.session_id:
                raise ValidationError(
                    f"Invalid parent node {request.parent_node_id} for session {session.session_id}",
                    detail="Invalid parent node",
                )
            depth = parent.depth + 1
        if depth > self._max_depth:
            raise ValidationError(
                f"Depth {depth} exceeds the maximum of {self._max_depth}",
                detail="Maximum tree depth exceeded",
            )
        if self.store.count_nodes(session.session_id) >= self._max_nodes:
            raise ValidationError(
                f"Session {session.session_id} already holds {self._max_nodes} nodes",
                detail="Session node limit reached",
            )

        with log_context(stage="normalize_choice", session_id=session.session_id):
            choice = self._normalizer.normalize(request.choice)

        order = self.store.count_children(session.session_id, request.parent_node_id)
        node = self.store.create_node(
            session_id=session.session_id,
            parent_node_id=request.parent_node_id,
            depth=depth,
            sibling_order=order,
            choice=choice.model_dump(mode="json", exclude_none=True),
            metrics=placeholder_metrics(),
            narrative=placeholder_narrative(),
            media=placeholder_media(),
        )
        if node.parent_node_id is not None:
            self.store.refresh_child_index(node.parent_node_id)
        self.store.update_session_aggregates(session.session_id)
        logger.info(
            "node_prepared session_id=%s node_id=%s depth=%s order=%s",
            session.session_id,
            node.node_id,
            depth,
            order,
        )
        return node

    def generate(self, node_id: uuid.UUID, preferences: UserPreferences | None = None) -> NodeRecord:
        """Run the pipeline for a placeholder and return the node in its terminal state."""
        node = self.store.get_node(node_id)
        if node is None:
            raise EntityNotFoundError("LifeNode", node_id)
        if node.status in TERMINAL_STATUSES:
            return node
        session = self.store.get_session(node.session_id)
        if session is None:
            raise EntityNotFoundError("LifeSession", node.session_id)

        with log_context(session_id=node.session_id, node_id=node.node_id):
            start = time.perf_counter()
            try:
                try:
                    fields = self._run_pipeline(node, session, preferences)
                    fields["processing_time_ms"] = int((time.perf_counter() - start) * 1000)
                    finalized = self.store.update_node(node.node_id, status=COMPLETED, **fields)
                except Exception as exc:
                    elapsed_ms = int((time.perf_counter() - start) * 1000)
                    logger.exception("node_generation_failed node_id=%s", node.node_id)
                    finalized = self.store.update_node(
                        node.node_id,
                        status=ERROR,
                        error_message=(str(exc) or type(exc).__name__)[:ERROR_MESSAGE_MAX_CHARS],
                        processing_time_ms=elapsed_ms,
                    )
                record_node_finalization(finalized.status)
            finally:
                if node.parent_node_id is not None:
                    self.store.refresh_child_index(node.parent_node_id)
                self.store.update_session_aggregates(node.session_id)
            logger.info(
                "node_complete node_id=%s status=%s processing_time_ms=%s",
                finalized.node_id,
                finalized.status,
                finalized.processing_time_ms,
            )
        return finalized

    def _run_pipeline(
        self,
        node: NodeRecord,
        session: SessionRecord,
        preferences: UserPreferences | None,
    ) -> dict[str, Any]:
        choice = Choice.model_validate(node.choice)
        if preferences is None:
            preferences = UserPreferences.model_validate(session.user_preferences or {})
        state = run_node_pipeline(
            node.node_id,
            choice,
            resolver=self._resolver,
            blender=self._blender,
            narrator=self._narrator,
            parent=self._parent_snapshot(node),
            base_context=BaseContext.model_validate(session.base_context or {}),
            preferences=preferences,
        )
        result = state["narrative"]
        resolved = state["resolved"]
        return {
            "metrics": state["metrics"].model_dump(mode="json"),
            "narrative": result.narrative.model_dump(mode="json"),
            "media": {
                "cover_photo": resolved.cover_image.model_dump(mode="json"),
                "fallbacks": list(resolved.fallbacks),
                "narrative_fallback": result.fallback_reason,
            },
            "error_message": None,
        }

    def _parent_snapshot(self, node: NodeRecord) -> ParentSnapshot | None:
        """The parent's state as blending input; unfinished or failed parents contribute nothing."""
        if node.parent_node_id is None:
            return None
        ancestors = self.store.list_ancestors(node.parent_node_id)
        if not ancestors:
            return None
        parent = ancestors[-1]
        if parent.status != COMPLETED or not parent.metrics:
            return None

        previous_choices = [
            dim.describe()
            for ancestor in ancestors
            for dim in Choice.model_validate(ancestor.choice).dimensions()
        ]
        return ParentSnapshot(
            node_id=parent.node_id,
            depth=parent.depth,
            choice=Choice.model_validate(parent.choice),
            metrics=NodeMetrics.model_validate(parent.metrics),
            narrative_summary=(parent.narrative or {}).get("summary", ""),
            previous_choices=previous_choices,
        )
