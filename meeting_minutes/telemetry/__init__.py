"""Telemetry helpers and metrics."""

from .metrics import (
    LLM_INVOCATIONS,
    PERSISTENCE_RETRIES,
    WORKFLOW_DURATION,
    WORKFLOW_TRANSITIONS,
    increment_persistence_retry,
    observe_llm_invocation,
    observe_transition,
    observe_workflow_duration,
)

__all__ = [
    "LLM_INVOCATIONS",
    "PERSISTENCE_RETRIES",
    "WORKFLOW_DURATION",
    "WORKFLOW_TRANSITIONS",
    "increment_persistence_retry",
    "observe_llm_invocation",
    "observe_transition",
    "observe_workflow_duration",
]
