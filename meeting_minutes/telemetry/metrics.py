"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

WORKFLOW_TRANSITIONS = Counter(
    "minutes_workflow_transitions_total",
    "Job status transitions applied by the workflow orchestrator",
    ("from_status", "to_status"),
)

WORKFLOW_DURATION = Histogram(
    "minutes_workflow_duration_seconds",
    "Wall-clock duration of a job workflow until it reached a terminal status",
    ("status",),
    buckets=(
        30.0,
        60.0,
        120.0,
        300.0,
        600.0,
        1200.0,
        1800.0,
        3600.0,
        7200.0,
    ),
)

LLM_INVOCATIONS = Counter(
    "minutes_llm_invocations_total",
    "Generative text invocations by outcome",
    ("outcome",),
)

PERSISTENCE_RETRIES = Counter(
    "minutes_persistence_retries_total",
    "Job store writes that failed and were retried or abandoned",
)


def observe_transition(from_status: str, to_status: str) -> None:
    """Record a persisted job status change."""

    WORKFLOW_TRANSITIONS.labels(
        from_status=from_status or "unknown",
        to_status=to_status or "unknown",
    ).inc()


def observe_workflow_duration(status: str, duration_seconds: float) -> None:
    observed_duration = duration_seconds if duration_seconds >= 0 else 0
    WORKFLOW_DURATION.labels(status=status or "unknown").observe(observed_duration)


def observe_llm_invocation(outcome: str) -> None:
    LLM_INVOCATIONS.labels(outcome=outcome).inc()


def increment_persistence_retry() -> None:
    PERSISTENCE_RETRIES.inc()


__all__ = [
    "increment_persistence_retry",
    "observe_llm_invocation",
    "observe_transition",
    "observe_workflow_duration",
]
