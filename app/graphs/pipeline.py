from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from app.core.exceptions import AppError, PipelineFailure
from app.core.metrics import track_pipeline_stage
from app.core.request_context import log_context
from app.graphs.metrics_blender import MetricsBlender
from app.graphs.metrics_resolver import MetricsResolver
from app.graphs.narrative import NarrativeCoordinator, NarrativeResult
from app.graphs.schemas import (
    BaseContext,
    Choice,
    CompositeIndices,
    NodeMetrics,
    ParentSnapshot,
    ResolvedMetrics,
    UserPreferences,
)

GRAPH_NAME = "node_generation"


class PipelineState(TypedDict, total=False):
    node_id: uuid.UUID
    choice: Choice
    parent: ParentSnapshot | None
    base_context: BaseContext | None
    preferences: UserPreferences | None

    resolver: MetricsResolver
    blender: MetricsBlender
    narrator: NarrativeCoordinator

    resolved: ResolvedMetrics
    metrics: NodeMetrics
    narrative: NarrativeResult


@contextmanager
def _stage(name: str):
    with log_context(stage=name), track_pipeline_stage(GRAPH_NAME, name):
        try:
            yield
        except AppError:
            raise
        except Exception as exc:
            raise PipelineFailure(
                f"{name} failed: {exc!r}",
                stage=name,
                detail=f"Node generation failed during {name}",
            ) from exc


def _node_resolve_metrics(state: PipelineState) -> dict[str, Any]:
    with _stage("resolve_metrics"):
        resolved = state["resolver"].resolve(
            state["choice"],
            parent=state.get("parent"),
            base_context=state.get("base_context"),
        )
    return {"resolved": resolved}


def _node_blend_metrics(state: PipelineState) -> dict[str, Any]:
    resolved = state["resolved"]
    parent = state.get("parent")
    parent_indices: CompositeIndices | None = parent.metrics.indices() if parent is not None else None
    with _stage("blend_metrics"):
        indices = state["blender"].blend_node(
            state["node_id"],
            resolved.city,
            resolved.occupation,
            resolved.finances,
            parent=parent_indices,
        )
    metrics = NodeMetrics(
        city=resolved.city,
        occupation=resolved.occupation,
        finances=resolved.finances,
        **indices.model_dump(),
    )
    return {"metrics": metrics}


def _node_generate_narrative(state: PipelineState) -> dict[str, Any]:
    with _stage("generate_narrative"):
        result = state["narrator"].generate(
            state["choice"],
            state["metrics"],
            parent=state.get("parent"),
            preferences=state.get("preferences"),
            base_context=state.get("base_context"),
        )
    return {"narrative": result}


def build_node_pipeline_graph():
    graph = StateGraph(PipelineState)

    graph.add_node("resolve_metrics", _node_resolve_metrics)
    graph.add_node("blend_metrics", _node_blend_metrics)
    graph.add_node("generate_narrative", _node_generate_narrative)

    graph.set_entry_point("resolve_metrics")
    graph.add_edge("resolve_metrics", "blend_metrics")
    graph.add_edge("blend_metrics", "generate_narrative")
    graph.add_edge("generate_narrative", END)

    return graph.compile()


_compiled_graph = None


def _get_graph():
    global _compiled_graph
    if _compiled_graph is None:
        _compiled_graph = build_node_pipeline_graph()
    return _compiled_graph


def run_node_pipeline(
    node_id: uuid.UUID,
    choice: Choice,
    *,
    resolver: MetricsResolver,
    blender: MetricsBlender,
    narrator: NarrativeCoordinator,
    parent: ParentSnapshot | None = None,
    base_context: BaseContext | None = None,
    preferences: UserPreferences | None = None,
) -> PipelineState:
    state: PipelineState = {
        "node_id": node_id,
        "choice": choice,
        "parent": parent,
        "base_context": base_context,
        "preferences": preferences,
        "resolver": resolver,
        "blender": blender,
        "narrator": narrator,
    }
    return _get_graph().invoke(state)
