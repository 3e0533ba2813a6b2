from __future__ import annotations

from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

PIPELINE_STAGE_DURATION = Histogram(
    "parallel_lives_pipeline_stage_duration_seconds",
    "Duration (seconds) broken down by pipeline stage.",
    ["graph", "stage"],
    registry=registry,
)

COLLABORATOR_CALLS_TOTAL = Counter(
    "parallel_lives_collaborator_calls_total",
    "External lookups partitioned by collaborator and outcome (success, fallback, cache_hit).",
    ["collaborator", "outcome"],
    registry=registry,
)

NODE_FINALIZATIONS_TOTAL = Counter(
    "parallel_lives_node_finalizations_total",
    "Nodes leaving the generating state, labeled by terminal status.",
    ["status"],
    registry=registry,
)

NARRATIVE_FALLBACKS_TOTAL = Counter(
    "parallel_lives_narrative_fallbacks_total",
    "Narratives produced by the deterministic template instead of the generator.",
    ["reason"],
    registry=registry,
)

JSON_PARSE_FAILURES = Counter(
    "parallel_lives_json_parse_failures_total",
    "Number of times parsing JSON from Gemini failed, labeled by the extraction tier.",
    ["tier"],
    registry=registry,
)

GEMINI_CALL_DURATION = Histogram(
    "parallel_lives_gemini_call_duration_seconds",
    "Latency for Gemini API calls per operation.",
    ["operation"],
    registry=registry,
)

GEMINI_CALLS_TOTAL = Counter(
    "parallel_lives_gemini_calls_total",
    "Total Gemini API calls partitioned by operation and status.",
    ["operation", "status"],
    registry=registry,
)


@contextmanager
def track_pipeline_stage(graph: str, stage: str):
    with PIPELINE_STAGE_DURATION.labels(graph=graph, stage=stage).time():
        yield


def record_collaborator_call(collaborator: str, outcome: str) -> None:
    COLLABORATOR_CALLS_TOTAL.labels(collaborator=collaborator, outcome=outcome).inc()


def record_node_finalization(status: str) -> None:
    NODE_FINALIZATIONS_TOTAL.labels(status=status).inc()


def record_narrative_fallback(reason: str) -> None:
    NARRATIVE_FALLBACKS_TOTAL.labels(reason=reason).inc()


def increment_json_parse_failure(tier: str) -> None:
    JSON_PARSE_FAILURES.labels(tier=tier).inc()


@contextmanager
def track_gemini_call(operation: str):
    timer = GEMINI_CALL_DURATION.labels(operation=operation).time()
    timer.__enter__()
    try:
        yield
        GEMINI_CALLS_TOTAL.labels(operation=operation, status="success").inc()
    except Exception:
        GEMINI_CALLS_TOTAL.labels(operation=operation, status="error").inc()
        raise
    finally:
        timer.__exit__(None, None, None)


def get_metrics_payload() -> bytes:
    return generate_latest(registry)
