"""Workflow orchestrator (Stage 05): the per-job state machine.

``SUBMITTED -> TRANSCRIBING -> GENERATING -> COMPLETED``, with ``FAILED``
reachable from every live state. Each transition is persisted through the
job store before the next step runs, so a run can resume from whatever
status the stored record holds. Jobs share nothing but the store, so many
runs can be awaited side by side (see ``run_many``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar, Union

from meeting_minutes.application.interfaces import (
    ArtifactStoreInterface,
    JobStoreInterface,
)
from meeting_minutes.domain.errors import (
    InputValidationError,
    InvalidTransitionError,
    JobNotFoundError,
    OrchestrationError,
    PersistenceError,
    TransientProviderError,
    WorkflowCancelledError,
    WorkflowTimeoutError,
)
from meeting_minutes.domain.models import Job, JobStatus, JobUpdate
from meeting_minutes.services.storage import normalise_object_ref
from meeting_minutes.telemetry.metrics import (
    increment_persistence_retry,
    observe_transition,
    observe_workflow_duration,
)

from .generator import MinutesGenerator
from .parsing import TranscriptParser
from .rendering import render_minutes_document
from .transcription import TranscriptionAdapter
from .types import PollState, SubmissionRequest, WorkflowInput

logger = logging.getLogger("meeting_minutes.pipeline")

T = TypeVar("T")


@dataclass
class _RunState:
    """Mutable bookkeeping for a single run of one job."""

    consecutive_poll_errors: int = 0


class WorkflowOrchestrator:
    """Drive one job at a time from its stored status to a terminal status."""

    def __init__(
        self,
        *,
        job_store: JobStoreInterface,
        transcription: TranscriptionAdapter,
        parser: TranscriptParser,
        generator: MinutesGenerator,
        artifact_store: ArtifactStoreInterface,
        artifact_root: str,
        poll_interval: float = 30.0,
        timeout: float = 7200.0,
        persist_attempts: int = 3,
        persist_retry_delay: float = 0.5,
        max_consecutive_poll_errors: int = 3,
        max_concurrent_jobs: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = job_store
        self._transcription = transcription
        self._parser = parser
        self._generator = generator
        self._artifacts = artifact_store
        self._artifact_root = artifact_root.rstrip("/")
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._persist_attempts = max(1, persist_attempts)
        self._persist_retry_delay = persist_retry_delay
        self._max_poll_errors = max(1, max_consecutive_poll_errors)
        self._max_concurrent_jobs = max_concurrent_jobs
        self._sleep = sleep
        self._clock = clock

    async def run(
        self,
        workflow: WorkflowInput,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Job:
        """Run the workflow for one job and return its terminal record."""

        if not workflow.job_id or not workflow.user_id:
            raise InputValidationError("job_id and user_id are required.")

        started = self._clock()
        job = await self._load(workflow.job_id, workflow.user_id)
        if job.status.is_terminal:
            logger.info("Job already %s job=%s; nothing to do", job.status.value, job.job_id)
            return job

        try:
            self._validate(workflow)
        except InputValidationError as exc:
            job = await self._fail(job, str(exc))
            self._record_duration(job, started)
            return job

        logger.info(
            "Workflow started job=%s user=%s status=%s audio=%s",
            job.job_id,
            job.user_id,
            job.status.value,
            workflow.audio_ref,
        )
        try:
            job = await asyncio.wait_for(
                self._drive(job, workflow, started + self._timeout, cancel_event),
                timeout=self._timeout,
            )
        except WorkflowTimeoutError as exc:
            job = await self._fail_latest(workflow, str(exc))
        except asyncio.TimeoutError:
            job = await self._fail_latest(
                workflow,
                f"Workflow timed out after {self._timeout:g} seconds.",
            )
        except WorkflowCancelledError as exc:
            job = await self._fail_latest(workflow, str(exc))

        self._record_duration(job, started)
        logger.info("Workflow finished job=%s status=%s", job.job_id, job.status.value)
        return job

    async def run_many(
        self,
        workflows: Iterable[WorkflowInput],
        *,
        concurrency: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Union[Job, BaseException]]:
        """Run independent jobs concurrently; one failure never stops the rest."""

        limit = concurrency or self._max_concurrent_jobs
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def _one(workflow: WorkflowInput) -> Job:
            if semaphore is None:
                return await self.run(workflow, cancel_event)
            async with semaphore:
                return await self.run(workflow, cancel_event)

        return await asyncio.gather(
            *(_one(workflow) for workflow in workflows),
            return_exceptions=True,
        )

    async def resume(
        self,
        user_id: str,
        *,
        page_size: int = 50,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Union[Job, BaseException]]:
        """Drive every unfinished job a user owns, from its stored status."""

        pending: List[WorkflowInput] = []
        cursor: Optional[str] = None
        while True:
            page = await self._with_persistence_retry(
                f"list jobs for {user_id}",
                lambda: self._store.query(user_id, limit=page_size, cursor=cursor),
            )
            pending.extend(
                WorkflowInput(job_id=job.job_id, user_id=job.user_id, audio_ref=job.audio_ref)
                for job in page.items
                if not job.status.is_terminal
            )
            cursor = page.next_cursor
            if not cursor:
                break

        logger.info("Resuming %s unfinished job(s) for user=%s", len(pending), user_id)
        return await self.run_many(pending, cancel_event=cancel_event)

    async def advance(
        self,
        job: Job,
        workflow: Optional[WorkflowInput] = None,
        state: Optional[_RunState] = None,
    ) -> Job:
        """Apply exactly one step for the job's current status."""

        state = state or _RunState()
        if job.status is JobStatus.SUBMITTED:
            return await self._submit(job, workflow)
        if job.status is JobStatus.TRANSCRIBING:
            return await self._poll(job, state)
        if job.status is JobStatus.GENERATING:
            return await self._generate(job)
        return job

    async def _drive(
        self,
        job: Job,
        workflow: WorkflowInput,
        deadline: float,
        cancel_event: Optional[asyncio.Event],
    ) -> Job:
        state = _RunState()
        while not job.status.is_terminal:
            if self._clock() >= deadline:
                raise WorkflowTimeoutError(
                    f"Workflow timed out after {self._timeout:g} seconds "
                    f"while {job.status.value}."
                )
            if cancel_event is not None and cancel_event.is_set():
                raise WorkflowCancelledError(
                    f"Workflow cancelled while {job.status.value}."
                )
            job = await self.advance(job, workflow, state)
            if job.status is JobStatus.TRANSCRIBING:
                await self._sleep(self._poll_interval)
        return job

    async def _submit(self, job: Job, workflow: Optional[WorkflowInput]) -> Job:
        if not job.transcription_job_handle:
            # Stored before the provider sees it, so a rerun reuses it.
            handle = self._transcription.build_handle(job.job_id)
            job = await self._with_persistence_retry(
                f"record transcription handle for job {job.job_id}",
                lambda: self._store.update(
                    job.job_id,
                    job.user_id,
                    JobUpdate(transcription_job_handle=handle),
                ),
            )

        request = SubmissionRequest(
            job_id=job.job_id,
            user_id=job.user_id,
            audio_ref=workflow.audio_ref if workflow else job.audio_ref,
            language_code=workflow.language_code if workflow else None,
            max_speakers=workflow.max_speakers if workflow else None,
            handle=job.transcription_job_handle,
        )
        try:
            handle = await self._transcription.submit(request)
        except Exception as exc:
            return await self._fail(job, f"Transcription submission failed: {exc}")

        return await self._transition(
            job,
            JobStatus.TRANSCRIBING,
            JobUpdate(transcription_job_handle=handle),
        )

    async def _poll(self, job: Job, state: _RunState) -> Job:
        handle = job.transcription_job_handle
        if not handle:
            return await self._fail(job, "Transcription handle is missing.")

        try:
            result = await self._transcription.poll(handle)
        except TransientProviderError as exc:
            state.consecutive_poll_errors += 1
            if state.consecutive_poll_errors < self._max_poll_errors:
                logger.warning(
                    "Transcription status check failed job=%s (%s/%s): %s",
                    job.job_id,
                    state.consecutive_poll_errors,
                    self._max_poll_errors,
                    exc,
                )
                return job
            return await self._fail(
                job,
                f"Transcription status check failed {state.consecutive_poll_errors} "
                f"times in a row: {exc}",
            )
        except Exception as exc:
            return await self._fail(job, f"Transcription status check failed: {exc}")

        state.consecutive_poll_errors = 0
        if result.state is PollState.IN_PROGRESS:
            logger.debug("Transcription in progress job=%s handle=%s", job.job_id, handle)
            return job
        if result.state is PollState.FAILED:
            return await self._fail(job, f"Transcription failed: {result.failure_reason}")
        return await self._transition(
            job,
            JobStatus.GENERATING,
            JobUpdate(transcript_artifact_ref=result.transcript_ref),
        )

    async def _generate(self, job: Job) -> Job:
        if not job.transcript_artifact_ref:
            return await self._fail(job, "Transcript artifact reference is missing.")

        minutes_ref = self._artifact_ref(job, "minutes.md")
        try:
            raw_transcript = await self._artifacts.get(job.transcript_artifact_ref)
            transcript = self._parser.parse_document(raw_transcript)
            minutes = await self._generator.generate(job.job_id, transcript)

            formatted = self._parser.format(transcript)
            document = render_minutes_document(minutes, formatted)
            await self._artifacts.put(
                minutes_ref,
                document.encode("utf-8"),
                "text/markdown; charset=utf-8",
            )
            await self._artifacts.put(
                self._artifact_ref(job, "minutes.json"),
                minutes.model_dump_json(by_alias=True, indent=2).encode("utf-8"),
                "application/json",
            )
            await self._artifacts.put(
                self._artifact_ref(job, "transcript.txt"),
                formatted.encode("utf-8"),
                "text/plain; charset=utf-8",
            )
        except Exception as exc:
            return await self._fail(job, f"Minutes generation failed: {exc}")

        return await self._transition(
            job,
            JobStatus.COMPLETED,
            JobUpdate(
                minutes_artifact_ref=minutes_ref,
                audio_duration_seconds=transcript.duration_seconds,
            ),
        )

    async def _transition(self, job: Job, target: JobStatus, update: JobUpdate) -> Job:
        changes = JobUpdate(status=target, **update.changes())
        updated = await self._with_persistence_retry(
            f"update job {job.job_id} to {target.value}",
            lambda: self._store.update(job.job_id, job.user_id, changes),
        )
        observe_transition(job.status.value, target.value)
        logger.info(
            "Job transition job=%s %s -> %s",
            job.job_id,
            job.status.value,
            target.value,
        )
        return updated

    async def _fail(self, job: Job, message: str) -> Job:
        logger.warning(
            "Job failing job=%s status=%s: %s",
            job.job_id,
            job.status.value,
            message,
        )
        return await self._transition(
            job,
            JobStatus.FAILED,
            JobUpdate(error_message=message),
        )

    async def _fail_latest(self, workflow: WorkflowInput, message: str) -> Job:
        # The interrupted step may have persisted more than we saw.
        current = await self._load(workflow.job_id, workflow.user_id)
        if current.status.is_terminal:
            return current
        return await self._fail(current, message)

    async def _load(self, job_id: str, user_id: str) -> Job:
        job = await self._with_persistence_retry(
            f"load job {job_id}",
            lambda: self._store.get(job_id, user_id),
        )
        if job is None:
            raise JobNotFoundError(f"Job {job_id} for user {user_id} does not exist.")
        return job

    async def _with_persistence_retry(
        self,
        description: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        last_error: Exception | None = None
        for attempt in range(1, self._persist_attempts + 1):
            try:
                return await operation()
            except (JobNotFoundError, InvalidTransitionError) as exc:
                raise OrchestrationError(f"Could not {description}: {exc}") from exc
            except (PersistenceError, TimeoutError, asyncio.TimeoutError) as exc:
                # A store timeout must not pass for the workflow ceiling.
                last_error = exc
                increment_persistence_retry()
                logger.warning(
                    "Job store failure (%s) attempt=%s/%s: %s",
                    description,
                    attempt,
                    self._persist_attempts,
                    exc,
                )
                if attempt < self._persist_attempts:
                    await self._sleep(self._persist_retry_delay * 2 ** (attempt - 1))

        raise OrchestrationError(
            f"Could not {description} after {self._persist_attempts} attempt(s): {last_error}"
        ) from last_error

    def _validate(self, workflow: WorkflowInput) -> None:
        if not workflow.audio_ref:
            raise InputValidationError("Audio reference is required.")
        try:
            normalise_object_ref(workflow.audio_ref)
        except ValueError as exc:
            raise InputValidationError(f"Invalid audio reference: {exc}") from exc

    def _artifact_ref(self, job: Job, name: str) -> str:
        return f"{self._artifact_root}/{job.user_id}/{job.job_id}/{name}"

    def _record_duration(self, job: Job, started: float) -> None:
        observe_workflow_duration(job.status.value, self._clock() - started)


__all__ = ["WorkflowOrchestrator"]
