"""Contracts for the collaborators the minutes pipeline depends on.

The orchestrator, adapter and generator only ever see these abstractions, so
tests can plug in-memory doubles where production wires AWS and SQL.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from meeting_minutes.domain.models import Job, JobPage, JobUpdate


@dataclass(frozen=True)
class TranscriptionJobRequest:
    """Provider-level request to start a batch transcription."""

    handle: str
    audio_uri: str
    language_code: str
    media_format: str
    output_bucket: str
    output_key: str
    max_speakers: int = 10
    speaker_labels: bool = True


@dataclass(frozen=True)
class ProviderJobStatus:
    """Raw status as reported by the speech-to-text provider."""

    state: str
    transcript_uri: Optional[str] = None
    failure_reason: Optional[str] = None


class JobStoreInterface(ABC):
    """Persistence contract for job records keyed by (job_id, user_id)"""

    @abstractmethod
    async def create(self, job: Job) -> Job:
        ...

    @abstractmethod
    async def get(self, job_id: str, user_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    async def update(self, job_id: str, user_id: str, update: JobUpdate) -> Job:
        ...

    @abstractmethod
    async def query(
        self,
        user_id: str,
        *,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> JobPage:
        ...


class ArtifactStoreInterface(ABC):
    """Byte storage for transcripts and rendered minutes"""

    @abstractmethod
    async def put(self, ref: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    async def get(self, ref: str) -> bytes:
        ...


class SpeechToTextClient(ABC):
    """Batch speech-to-text provider"""

    @abstractmethod
    async def start_job(self, request: TranscriptionJobRequest) -> None:
        ...

    @abstractmethod
    async def get_job(self, handle: str) -> ProviderJobStatus:
        ...


class GenerativeTextClient(ABC):
    """Single-prompt text generation provider"""

    @abstractmethod
    async def invoke(
        self,
        *,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        ...
