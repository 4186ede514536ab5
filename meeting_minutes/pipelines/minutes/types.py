"""Typed containers shared across the minutes pipeline.

These dataclasses live in their own module so the stages (`transcription`,
`generator`, `orchestrator`) can import them without circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SubmissionRequest:
    """Everything the transcription adapter needs to start one job."""

    job_id: str
    user_id: str
    audio_ref: str
    language_code: Optional[str] = None
    max_speakers: Optional[int] = None
    media_format: Optional[str] = None
    handle: Optional[str] = None


class PollState(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PollResult:
    """Interpreted transcription status for a handle."""

    state: PollState
    transcript_ref: Optional[str] = None
    failure_reason: Optional[str] = None

    @classmethod
    def in_progress(cls) -> "PollResult":
        return cls(state=PollState.IN_PROGRESS)

    @classmethod
    def completed(cls, transcript_ref: str) -> "PollResult":
        return cls(state=PollState.COMPLETED, transcript_ref=transcript_ref)

    @classmethod
    def failed(cls, reason: str) -> "PollResult":
        return cls(state=PollState.FAILED, failure_reason=reason)


@dataclass(frozen=True)
class WorkflowInput:
    """Trigger payload that starts the workflow for one job."""

    job_id: str
    user_id: str
    audio_ref: str
    language_code: Optional[str] = None
    max_speakers: Optional[int] = None


__all__ = ["PollResult", "PollState", "SubmissionRequest", "WorkflowInput"]
