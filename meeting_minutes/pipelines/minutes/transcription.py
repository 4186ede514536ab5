"""Transcription adapter (Stages 01-02): submit audio and interpret status."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import PurePosixPath
from typing import Awaitable, Callable

from meeting_minutes.application.interfaces import (
    SpeechToTextClient,
    TranscriptionJobRequest,
)
from meeting_minutes.domain.errors import (
    HandleConflictError,
    InputValidationError,
    MissingArtifactError,
    TransientProviderError,
)
from meeting_minutes.services.storage import normalise_object_ref

from .types import PollResult, SubmissionRequest

logger = logging.getLogger("meeting_minutes.pipeline")

MAX_HANDLE_LENGTH = 200
_HANDLE_DISALLOWED = re.compile(r"[^0-9A-Za-z._-]")
_MEDIA_FORMATS = frozenset({"amr", "flac", "m4a", "mp3", "mp4", "ogg", "wav", "webm"})


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class TranscriptionAdapter:
    """Submit/poll facade over a batch speech-to-text client."""

    def __init__(
        self,
        client: SpeechToTextClient,
        *,
        output_bucket: str,
        language_code: str = "en-US",
        default_media_format: str = "mp4",
        max_speakers: int = 10,
        job_name_prefix: str = "meeting-minutes",
        submit_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock_ms: Callable[[], int] = _epoch_millis,
    ) -> None:
        self._client = client
        self._output_bucket = output_bucket
        self._language_code = language_code
        self._default_media_format = default_media_format
        self._max_speakers = max_speakers
        self._job_name_prefix = job_name_prefix
        self._submit_attempts = max(1, submit_attempts)
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._clock_ms = clock_ms

    def build_handle(self, job_id: str) -> str:
        raw = f"{self._job_name_prefix}-{job_id}-{self._clock_ms()}"
        return _HANDLE_DISALLOWED.sub("-", raw)[:MAX_HANDLE_LENGTH]

    def media_format_for(self, audio_ref: str) -> str:
        suffix = PurePosixPath(audio_ref.split("?", 1)[0]).suffix.lower().lstrip(".")
        return suffix if suffix in _MEDIA_FORMATS else self._default_media_format

    async def submit(self, request: SubmissionRequest) -> str:
        """Start transcription and return the provider handle.

        A handle passed in the request is reused, and transient failures are
        retried under the same handle, so one job never spawns two provider
        jobs. A conflict on that handle means an earlier attempt got through.
        """

        if not request.job_id or not request.user_id:
            raise InputValidationError("job_id and user_id are required.")
        try:
            audio_uri = normalise_object_ref(request.audio_ref)
        except ValueError as exc:
            raise InputValidationError(f"Invalid audio reference: {exc}") from exc

        handle = request.handle or self.build_handle(request.job_id)
        provider_request = TranscriptionJobRequest(
            handle=handle,
            audio_uri=audio_uri,
            language_code=request.language_code or self._language_code,
            media_format=request.media_format or self.media_format_for(audio_uri),
            output_bucket=self._output_bucket,
            output_key=f"{request.user_id}/{request.job_id}/transcript.json",
            max_speakers=request.max_speakers or self._max_speakers,
        )

        for attempt in range(1, self._submit_attempts + 1):
            try:
                await self._client.start_job(provider_request)
            except HandleConflictError:
                logger.info(
                    "Transcription handle already exists job=%s handle=%s; reusing it",
                    request.job_id,
                    handle,
                )
                return handle
            except TransientProviderError as exc:
                logger.warning(
                    "Transcription submit failed job=%s handle=%s attempt=%s/%s: %s",
                    request.job_id,
                    handle,
                    attempt,
                    self._submit_attempts,
                    exc,
                )
                if attempt >= self._submit_attempts:
                    raise
                await self._sleep(self._retry_delay * 2 ** (attempt - 1))
                continue

            logger.info("Submitted transcription job=%s handle=%s", request.job_id, handle)
            return handle

        raise TransientProviderError("Transcription submission was not attempted.")

    async def poll(self, handle: str) -> PollResult:
        status = await self._client.get_job(handle)
        state = (status.state or "").upper()

        if state == "COMPLETED":
            if not status.transcript_uri:
                raise MissingArtifactError(
                    f"Transcription {handle} completed without a transcript location."
                )
            try:
                return PollResult.completed(normalise_object_ref(status.transcript_uri))
            except ValueError as exc:
                raise MissingArtifactError(
                    f"Transcription {handle} returned an unusable transcript location: {exc}"
                ) from exc
        if state == "FAILED":
            return PollResult.failed(status.failure_reason or "Transcription failed.")
        if state not in ("QUEUED", "IN_PROGRESS"):
            logger.info("Unknown transcription state %r for handle=%s", status.state, handle)
        return PollResult.in_progress()


__all__ = ["MAX_HANDLE_LENGTH", "TranscriptionAdapter"]
