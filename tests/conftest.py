"""Shared fixtures and in-memory doubles for the minutes pipeline tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

# Ensure repo root is on sys.path so `import meeting_minutes...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from meeting_minutes.application.interfaces import (  # noqa: E402
    ArtifactStoreInterface,
    GenerativeTextClient,
    JobStoreInterface,
    ProviderJobStatus,
    SpeechToTextClient,
    TranscriptionJobRequest,
)
from meeting_minutes.domain.errors import (  # noqa: E402
    JobNotFoundError,
    MissingArtifactError,
    PersistenceError,
)
from meeting_minutes.domain.models import (  # noqa: E402
    Job,
    JobPage,
    JobStatus,
    JobUpdate,
    validate_job_update,
)


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class InMemoryJobStore(JobStoreInterface):
    """Job store with the same update rules as the SQL store."""

    def __init__(self) -> None:
        self.jobs: Dict[Tuple[str, str], Job] = {}
        self.updates: List[JobUpdate] = []
        self.fail_next_updates = 0
        self._tick = 0

    def _timestamp(self) -> datetime:
        self._tick += 1
        return datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self._tick)

    async def create(self, job: Job) -> Job:
        key = (job.job_id, job.user_id)
        if key in self.jobs:
            raise PersistenceError(f"Job {job.job_id} already exists.")
        timestamp = self._timestamp()
        stored = job.model_copy(
            update={"created_at": job.created_at or timestamp, "updated_at": timestamp}
        )
        self.jobs[key] = stored
        return stored

    async def get(self, job_id: str, user_id: str) -> Optional[Job]:
        return self.jobs.get((job_id, user_id))

    async def update(self, job_id: str, user_id: str, update: JobUpdate) -> Job:
        if self.fail_next_updates > 0:
            self.fail_next_updates -= 1
            raise PersistenceError("database unavailable")
        current = self.jobs.get((job_id, user_id))
        if current is None:
            raise JobNotFoundError(f"Job {job_id} does not exist.")
        validate_job_update(current.status, update)
        changes = update.changes()
        changes["updated_at"] = self._timestamp()
        updated = current.model_copy(update=changes)
        self.jobs[(job_id, user_id)] = updated
        self.updates.append(update)
        return updated

    async def query(
        self,
        user_id: str,
        *,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> JobPage:
        owned = sorted(
            (job for (_, owner), job in self.jobs.items() if owner == user_id),
            key=lambda job: job.created_at,
            reverse=True,
        )
        offset = int(cursor) if cursor else 0
        page = owned[offset : offset + limit]
        more = len(owned) > offset + limit
        return JobPage(items=page, next_cursor=str(offset + limit) if more else None)

    def statuses(self) -> List[JobStatus]:
        return [update.status for update in self.updates if update.status is not None]


class InMemoryArtifactStore(ArtifactStoreInterface):
    def __init__(self, objects: Optional[Dict[str, bytes]] = None) -> None:
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.content_types: Dict[str, str] = {}

    async def put(self, ref: str, data: bytes, content_type: str) -> None:
        self.objects[ref] = data
        self.content_types[ref] = content_type

    async def get(self, ref: str) -> bytes:
        try:
            return self.objects[ref]
        except KeyError as exc:
            raise MissingArtifactError(f"Artifact not found: {ref}") from exc


Scripted = Union[ProviderJobStatus, Exception]


class ScriptedSpeechToText(SpeechToTextClient):
    """Replays scripted submit outcomes and poll statuses (the last one repeats)."""

    def __init__(
        self,
        statuses: Sequence[Scripted] = (),
        submit_errors: Sequence[Exception] = (),
    ) -> None:
        self.statuses = list(statuses) or [ProviderJobStatus(state="IN_PROGRESS")]
        self.submit_errors = list(submit_errors)
        self.started: List[TranscriptionJobRequest] = []
        self.polled: List[str] = []

    async def start_job(self, request: TranscriptionJobRequest) -> None:
        self.started.append(request)
        if self.submit_errors:
            raise self.submit_errors.pop(0)

    async def get_job(self, handle: str) -> ProviderJobStatus:
        self.polled.append(handle)
        outcome = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedLlm(GenerativeTextClient):
    """Returns scripted responses in order; exceptions are raised."""

    def __init__(self, responses: Sequence[Union[str, Exception]]) -> None:
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.calls = 0

    async def invoke(
        self,
        *,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def recognizer_document(
    words: Sequence[Tuple[str, float, float]],
    *,
    segments: Sequence[Tuple[str, float, float]] = (),
    transcript: Optional[str] = None,
    confidence: float = 0.9,
) -> dict:
    """Build an Amazon Transcribe style document.

    ``words`` entries whose start is negative are punctuation tokens.
    """

    items = []
    for content, start, end in words:
        if start < 0:
            items.append(
                {
                    "type": "punctuation",
                    "alternatives": [{"content": content, "confidence": "0.0"}],
                }
            )
        else:
            items.append(
                {
                    "type": "pronunciation",
                    "start_time": f"{start:.2f}",
                    "end_time": f"{end:.2f}",
                    "alternatives": [{"content": content, "confidence": str(confidence)}],
                }
            )
    results: dict = {
        "transcripts": [
            {"transcript": transcript or " ".join(w for w, s, _ in words if s >= 0)}
        ],
        "items": items,
    }
    if segments:
        results["speaker_labels"] = {
            "speakers": len({label for label, _, _ in segments}),
            "segments": [
                {
                    "start_time": f"{start:.2f}",
                    "end_time": f"{end:.2f}",
                    "speaker_label": label,
                    "items": [],
                }
                for label, start, end in segments
            ],
        }
    return {"jobName": "meeting-minutes-job", "status": "COMPLETED", "results": results}


P = -1.0  # punctuation marker for recognizer_document


def kickoff_document() -> dict:
    """Two-speaker kickoff call used across the tests."""

    return recognizer_document(
        [
            ("Hello", 0.0, 0.5),
            ("let's", 0.6, 0.9),
            ("start", 1.0, 1.4),
            ("Agreed", 6.0, 6.5),
            (",", P, P),
            ("I", 6.7, 6.8),
            ("will", 6.9, 7.1),
            ("send", 7.2, 7.5),
            ("the", 7.6, 7.7),
            ("report", 7.8, 8.3),
            ("by", 8.4, 8.6),
            ("Friday", 8.7, 9.4),
        ],
        segments=[("spk_0", 0.0, 5.0), ("spk_1", 6.0, 12.0)],
        transcript="Hello let's start Agreed, I will send the report by Friday",
    )


KICKOFF_RESPONSE = (
    '{"summary":"Kickoff call","decisions":[],"nextActions":'
    '[{"description":"Send report","assignee":"spk_1","dueDate":"2025-10-17"}]}'
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()
