"""Tests for submitting transcription jobs and interpreting their status."""

from __future__ import annotations

import pytest

from conftest import FakeClock, ScriptedSpeechToText
from meeting_minutes.application.interfaces import ProviderJobStatus
from meeting_minutes.domain.errors import (
    HandleConflictError,
    InputValidationError,
    MissingArtifactError,
    ProviderError,
    TransientProviderError,
)
from meeting_minutes.pipelines.minutes import (
    PollState,
    SubmissionRequest,
    TranscriptionAdapter,
)
from meeting_minutes.pipelines.minutes.transcription import MAX_HANDLE_LENGTH


def _adapter(client, clock: FakeClock, **kwargs) -> TranscriptionAdapter:
    return TranscriptionAdapter(
        client,
        output_bucket="minutes-output",
        sleep=clock.sleep,
        clock_ms=lambda: 1700000000000,
        **kwargs,
    )


def _request(**overrides) -> SubmissionRequest:
    values = {
        "job_id": "job-1",
        "user_id": "user-1",
        "audio_ref": "s3://minutes-input/user-1/job-1/meeting.m4a",
    }
    values.update(overrides)
    return SubmissionRequest(**values)


@pytest.mark.asyncio
async def test_submit_builds_provider_request(clock):
    client = ScriptedSpeechToText()

    handle = await _adapter(client, clock).submit(_request())

    assert handle == "meeting-minutes-job-1-1700000000000"
    [sent] = client.started
    assert sent.handle == handle
    assert sent.audio_uri == "s3://minutes-input/user-1/job-1/meeting.m4a"
    assert sent.media_format == "m4a"
    assert sent.language_code == "en-US"
    assert sent.max_speakers == 10
    assert sent.speaker_labels is True
    assert sent.output_bucket == "minutes-output"
    assert sent.output_key == "user-1/job-1/transcript.json"


@pytest.mark.asyncio
async def test_submit_honours_request_overrides_and_https_audio(clock):
    client = ScriptedSpeechToText()
    request = _request(
        audio_ref="https://minutes-input.s3.amazonaws.com/user-1/job-1/call.recording",
        language_code="ja-JP",
        max_speakers=4,
    )

    await _adapter(client, clock, default_media_format="mp3").submit(request)

    [sent] = client.started
    assert sent.audio_uri == "s3://minutes-input/user-1/job-1/call.recording"
    assert sent.media_format == "mp3"
    assert sent.language_code == "ja-JP"
    assert sent.max_speakers == 4


def test_handle_is_sanitised_and_bounded(clock):
    adapter = _adapter(ScriptedSpeechToText(), clock)

    handle = adapter.build_handle("weird id/with:chars" + "x" * 300)

    assert len(handle) == MAX_HANDLE_LENGTH
    assert handle.startswith("meeting-minutes-weird-id-with-chars")
    assert all(c.isalnum() or c in "._-" for c in handle)


@pytest.mark.asyncio
async def test_transient_submit_failures_reuse_the_same_handle(clock):
    client = ScriptedSpeechToText(
        submit_errors=[TransientProviderError("throttled"), TransientProviderError("5xx")]
    )

    handle = await _adapter(client, clock, retry_delay=1.0).submit(_request())

    assert len(client.started) == 3
    assert {sent.handle for sent in client.started} == {handle}
    assert clock.sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_transient_submit_failures_eventually_surface(clock):
    client = ScriptedSpeechToText(submit_errors=[TransientProviderError("down")] * 5)

    with pytest.raises(TransientProviderError):
        await _adapter(client, clock, submit_attempts=2).submit(_request())

    assert len(client.started) == 2


@pytest.mark.asyncio
async def test_conflict_on_existing_handle_counts_as_submitted(clock):
    client = ScriptedSpeechToText(submit_errors=[HandleConflictError("exists")])

    handle = await _adapter(client, clock).submit(_request(handle="meeting-minutes-job-1-1"))

    assert handle == "meeting-minutes-job-1-1"
    assert client.started[0].handle == "meeting-minutes-job-1-1"


@pytest.mark.asyncio
async def test_permanent_submit_errors_are_not_retried(clock):
    client = ScriptedSpeechToText(submit_errors=[ProviderError("BadRequestException")])

    with pytest.raises(ProviderError):
        await _adapter(client, clock).submit(_request())

    assert len(client.started) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("audio_ref", ["", "ftp://host/file.mp3", "s3://bucket-only"])
async def test_invalid_audio_reference_is_rejected(clock, audio_ref):
    client = ScriptedSpeechToText()

    with pytest.raises(InputValidationError):
        await _adapter(client, clock).submit(_request(audio_ref=audio_ref))

    assert client.started == []


@pytest.mark.asyncio
@pytest.mark.parametrize("state", ["QUEUED", "IN_PROGRESS", "SOMETHING_NEW", ""])
async def test_non_terminal_states_are_in_progress(clock, state):
    client = ScriptedSpeechToText([ProviderJobStatus(state=state)])

    result = await _adapter(client, clock).poll("handle-1")

    assert result.state is PollState.IN_PROGRESS


@pytest.mark.asyncio
async def test_completed_normalises_transcript_location(clock):
    client = ScriptedSpeechToText(
        [
            ProviderJobStatus(
                state="COMPLETED",
                transcript_uri="https://s3.us-east-1.amazonaws.com/minutes-output/user-1/job-1/transcript.json",
            )
        ]
    )

    result = await _adapter(client, clock).poll("handle-1")

    assert result.state is PollState.COMPLETED
    assert result.transcript_ref == "s3://minutes-output/user-1/job-1/transcript.json"


@pytest.mark.asyncio
async def test_completed_without_transcript_is_missing_artifact(clock):
    client = ScriptedSpeechToText([ProviderJobStatus(state="COMPLETED")])

    with pytest.raises(MissingArtifactError):
        await _adapter(client, clock).poll("handle-1")


@pytest.mark.asyncio
async def test_failed_carries_provider_reason(clock):
    client = ScriptedSpeechToText(
        [ProviderJobStatus(state="FAILED", failure_reason="Unsupported media format")]
    )

    result = await _adapter(client, clock).poll("handle-1")

    assert result.state is PollState.FAILED
    assert result.failure_reason == "Unsupported media format"
