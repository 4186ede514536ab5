"""Tests for prompt building, LLM retries and response validation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import KICKOFF_RESPONSE, FakeClock, ScriptedLlm, kickoff_document
from meeting_minutes.domain.errors import (
    ResponseParseError,
    ServiceUnavailableError,
    TransientProviderError,
)
from meeting_minutes.domain.models import ParsedTranscript
from meeting_minutes.pipelines.minutes import MinutesGenerator, TranscriptParser
from meeting_minutes.pipelines.minutes.prompts import build_minutes_prompt
from meeting_minutes.pipelines.minutes.response_contract import (
    LlmMinutesResponse,
    extract_fenced_block,
    strip_code_fence,
)

FIXED_NOW = datetime(2025, 10, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def transcript() -> ParsedTranscript:
    return TranscriptParser().parse_document(kickoff_document())


def _generator(llm, clock: FakeClock, **kwargs) -> MinutesGenerator:
    return MinutesGenerator(llm, sleep=clock.sleep, now=lambda: FIXED_NOW, **kwargs)


@pytest.mark.asyncio
async def test_kickoff_call_produces_one_next_action(transcript, clock):
    llm = ScriptedLlm([KICKOFF_RESPONSE])

    minutes = await _generator(llm, clock).generate("job-1", transcript)

    assert minutes.job_id == "job-1"
    assert minutes.summary == "Kickoff call"
    assert minutes.decisions == []
    [action] = minutes.next_actions
    assert action.description == "Send report"
    assert action.assignee == "spk_1"
    assert action.due_date == "2025-10-17"
    assert action.timestamp is None
    assert action.id
    assert minutes.transcript == transcript.full_text
    assert {s.id: s.segment_count for s in minutes.speakers} == {"spk_0": 1, "spk_1": 1}
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_model_supplied_ids_are_replaced_with_unique_ones(transcript, clock):
    llm = ScriptedLlm(
        [
            '{"summary": "s",'
            ' "decisions": [{"id": "dup", "description": "Ship v2"},'
            '               {"id": "dup", "description": "Hire QA", "timestamp": "00:03:10"}],'
            ' "nextActions": [{"id": "dup", "description": "Write plan"}]}'
        ]
    )

    minutes = await _generator(llm, clock).generate("job-1", transcript)

    ids = [d.id for d in minutes.decisions] + [a.id for a in minutes.next_actions]
    assert len(ids) == 3
    assert len(set(ids)) == 3
    assert "dup" not in ids
    assert all(ids)
    assert minutes.decisions[1].timestamp == "00:03:10"


@pytest.mark.asyncio
async def test_always_failing_client_exhausts_retries_with_backoff(transcript, clock):
    llm = ScriptedLlm([TransientProviderError("throttled")])

    with pytest.raises(ServiceUnavailableError) as excinfo:
        await _generator(llm, clock, max_retries=3, base_delay=1.0).generate(
            "job-1", transcript
        )

    assert llm.calls == 3
    assert clock.sleeps == [1.0, 2.0]
    assert excinfo.value.attempts == 3
    assert "3 attempt" in str(excinfo.value)
    assert "throttled" in str(excinfo.value)


@pytest.mark.asyncio
async def test_empty_responses_count_as_failed_attempts(transcript, clock):
    llm = ScriptedLlm([RuntimeError("connection reset"), "   ", KICKOFF_RESPONSE])

    minutes = await _generator(llm, clock, base_delay=0.5).generate("job-1", transcript)

    assert llm.calls == 3
    assert clock.sleeps == [0.5, 1.0]
    assert minutes.summary == "Kickoff call"


@pytest.mark.asyncio
async def test_fenced_and_bare_json_yield_the_same_minutes(transcript, clock):
    fenced = ScriptedLlm([f"```json\n{KICKOFF_RESPONSE}\n```"])
    bare = ScriptedLlm([KICKOFF_RESPONSE])

    from_fenced = await _generator(fenced, clock).generate("job-1", transcript)
    from_bare = await _generator(bare, clock).generate("job-1", transcript)

    exclude = {"next_actions": {0: {"id"}}}
    assert from_fenced.model_dump(exclude=exclude) == from_bare.model_dump(exclude=exclude)


@pytest.mark.asyncio
async def test_invalid_json_is_a_parse_error_and_not_retried(transcript, clock):
    llm = ScriptedLlm(["Sorry, I cannot help with that."])

    with pytest.raises(ResponseParseError):
        await _generator(llm, clock).generate("job-1", transcript)

    assert llm.calls == 1


@pytest.mark.parametrize(
    "payload",
    [
        '{"summary": "s", "nextActions": []}',
        '{"summary": "s", "decisions": [], "nextActions": [{"assignee": "spk_0"}]}',
        '{"summary": "s", "decisions": [{"description": "  "}], "nextActions": []}',
        '{"summary": "s", "decisions": "none", "nextActions": []}',
        '[{"summary": "s"}]',
    ],
)
def test_schema_violations_are_rejected(payload):
    with pytest.raises(ResponseParseError):
        LlmMinutesResponse.from_json(payload)


def test_missing_summary_and_blank_optionals_are_normalised():
    response = LlmMinutesResponse.from_json(
        '{"summary": null, "decisions": [],'
        ' "nextActions": [{"description": "Book room", "assignee": "", "dueDate": null}]}'
    )

    assert response.summary == ""
    assert response.next_actions[0].assignee is None
    assert response.next_actions[0].due_date is None


@pytest.mark.parametrize(
    "raw",
    [
        '```json\n{"a": 1}\n```',
        '```JSON {"a": 1} ```',
        '```\n{"a": 1}\n```',
        '  {"a": 1}  ',
    ],
)
def test_strip_code_fence(raw):
    assert strip_code_fence(raw) == '{"a": 1}'


def test_strip_code_fence_leaves_inline_backticks_alone():
    raw = '{"summary": "We reviewed the ```yaml``` block"}'

    assert strip_code_fence(f"  {raw}\n") == raw


def test_backticks_inside_unfenced_json_values_are_kept():
    response = LlmMinutesResponse.from_json(
        '{"summary": "We reviewed the ```yaml``` block", "decisions": [], "nextActions": []}'
    )

    assert response.summary == "We reviewed the ```yaml``` block"


def test_fenced_block_inside_prose_is_still_parsed():
    response = LlmMinutesResponse.from_json(
        'Here are the minutes:\n```json\n{"summary": "s", "decisions": [], "nextActions": []}\n```\nThanks!'
    )

    assert response.summary == "s"
    assert extract_fenced_block("no fences here") is None


def test_prompt_lists_each_segment_with_its_start_time(transcript):
    prompt = build_minutes_prompt(transcript)

    assert "[00:00:00] spk_0: Hello let's start" in prompt
    assert "[00:00:06] spk_1: Agreed, I will send the report by Friday" in prompt
    assert '"nextActions"' in prompt


def test_prompt_falls_back_to_full_text_without_segments():
    transcript = ParsedTranscript(full_text="Only punctuation survived.")

    assert "Only punctuation survived." in build_minutes_prompt(transcript)


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        MinutesGenerator(ScriptedLlm(["{}"]), max_retries=0)
