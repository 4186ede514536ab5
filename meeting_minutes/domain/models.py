from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import InvalidTransitionError


class _CamelModel(BaseModel):
    """Snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class JobStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    TRANSCRIBING = "TRANSCRIBING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    def can_transition_to(self, target: "JobStatus") -> bool:
        """Forward-only: the next step, a self-loop, or FAILED from any live state."""

        if self.is_terminal:
            return False
        if target is JobStatus.FAILED or target is self:
            return True
        return _STATUS_ORDER.index(target) == _STATUS_ORDER.index(self) + 1


_STATUS_ORDER = (
    JobStatus.SUBMITTED,
    JobStatus.TRANSCRIBING,
    JobStatus.GENERATING,
    JobStatus.COMPLETED,
)


class Job(_CamelModel):
    """One end-to-end request to turn a recording into minutes."""

    job_id: str
    user_id: str
    status: JobStatus = JobStatus.SUBMITTED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    audio_ref: str = ""
    audio_size_bytes: int = 0
    audio_duration_seconds: Optional[float] = None
    transcription_job_handle: Optional[str] = None
    transcript_artifact_ref: Optional[str] = None
    minutes_artifact_ref: Optional[str] = None
    error_message: Optional[str] = None


class JobUpdate(_CamelModel):
    """Partial update; only explicitly set fields are written."""

    status: Optional[JobStatus] = None
    audio_size_bytes: Optional[int] = None
    audio_duration_seconds: Optional[float] = None
    transcription_job_handle: Optional[str] = None
    transcript_artifact_ref: Optional[str] = None
    minutes_artifact_ref: Optional[str] = None
    error_message: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def validate_job_update(current: JobStatus, update: JobUpdate) -> None:
    """Reject writes that would break the forward-only status invariant."""

    if current.is_terminal:
        raise InvalidTransitionError(
            f"Job is {current.value} and can no longer be modified."
        )
    target = update.status
    if target is not None and not current.can_transition_to(target):
        raise InvalidTransitionError(
            f"Cannot move job from {current.value} to {target.value}."
        )
    if update.error_message is not None and target is not JobStatus.FAILED:
        raise InvalidTransitionError("error_message may only be set when failing a job.")


class JobPage(_CamelModel):
    items: List[Job] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class TranscriptSegment(_CamelModel):
    """One contiguous speaker turn."""

    speaker_id: str
    start_time: float
    end_time: float
    text: str
    confidence: float = 0.0


class SpeakerStat(_CamelModel):
    id: str
    segment_count: int = 0
    total_duration: float = 0.0


class ParsedTranscript(_CamelModel):
    full_text: str
    duration_seconds: float = 0.0
    speaker_count: int = 0
    segments: List[TranscriptSegment] = Field(default_factory=list)
    speakers: List[SpeakerStat] = Field(default_factory=list)


class Decision(_CamelModel):
    id: str
    description: str
    timestamp: Optional[str] = None


class NextAction(_CamelModel):
    id: str
    description: str
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    timestamp: Optional[str] = None


class Minutes(_CamelModel):
    """Structured minutes produced for a single job."""

    job_id: str
    generated_at: datetime
    summary: str = ""
    decisions: List[Decision] = Field(default_factory=list)
    next_actions: List[NextAction] = Field(default_factory=list)
    transcript: str = ""
    speakers: Optional[List[SpeakerStat]] = None
