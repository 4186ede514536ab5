"""Recognizer output parsing (Stage 03).

Turns the time-aligned token stream returned by the speech-to-text provider
into speaker-attributed segments. Everything here is a pure function of its
input so the same document always yields the same ``ParsedTranscript``.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, model_validator

from meeting_minutes.domain.errors import EmptyTranscriptError, TranscriptFormatError
from meeting_minutes.domain.models import ParsedTranscript, SpeakerStat, TranscriptSegment

logger = logging.getLogger("meeting_minutes.pipeline")

DEFAULT_SPEAKER_ID = "spk_0"


class RecognizerAlternative(BaseModel):
    content: str
    confidence: float = 0.0

    model_config = {"extra": "ignore"}


class RecognizerItem(BaseModel):
    type: Literal["pronunciation", "punctuation"]
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    alternatives: List[RecognizerAlternative] = Field(min_length=1)
    speaker_label: Optional[str] = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def require_timing_for_words(self) -> "RecognizerItem":
        if self.type == "pronunciation" and (
            self.start_time is None or self.end_time is None
        ):
            raise ValueError("pronunciation items need start_time and end_time")
        return self

    @property
    def is_word(self) -> bool:
        return self.type == "pronunciation"

    @property
    def content(self) -> str:
        return self.alternatives[0].content

    @property
    def confidence(self) -> float:
        return self.alternatives[0].confidence


class RecognizerSpeakerSegment(BaseModel):
    start_time: float
    end_time: float
    speaker_label: str

    model_config = {"extra": "ignore"}


class RecognizerSpeakerLabels(BaseModel):
    speakers: Optional[int] = None
    segments: List[RecognizerSpeakerSegment] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class RecognizerTranscript(BaseModel):
    transcript: str = Field(validation_alias=AliasChoices("transcript", "text"))

    model_config = {"extra": "ignore"}


class RecognizerOutput(BaseModel):
    """The ``results`` object of a batch transcription document."""

    transcripts: List[RecognizerTranscript] = Field(default_factory=list)
    items: List[RecognizerItem] = Field(default_factory=list)
    speaker_labels: Optional[RecognizerSpeakerLabels] = None

    model_config = {"extra": "ignore"}


def format_timestamp(seconds: float) -> str:
    """Render seconds as ``HH:MM:SS``; the hour field widens past 99."""

    total = int(math.floor(max(seconds, 0.0)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def aggregate_speakers(segments: Iterable[TranscriptSegment]) -> List[SpeakerStat]:
    """Per-speaker segment count and speaking time, in first-seen order."""

    stats: dict[str, SpeakerStat] = {}
    for segment in segments:
        stat = stats.get(segment.speaker_id)
        if stat is None:
            stat = stats[segment.speaker_id] = SpeakerStat(id=segment.speaker_id)
        stat.segment_count += 1
        stat.total_duration = round(
            stat.total_duration + (segment.end_time - segment.start_time), 3
        )
    return list(stats.values())


def _render_text(
    items: Iterable[RecognizerItem],
    include: Callable[[RecognizerItem], bool],
) -> str:
    # Punctuation sticks to the word right before it, only if that word is kept.
    parts: list[str] = []
    previous_included = False
    for item in items:
        if item.is_word:
            previous_included = include(item)
            if previous_included:
                parts.append(item.content)
        elif previous_included and parts:
            parts[-1] += item.content
    return " ".join(parts).strip()


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


class TranscriptParser:
    """Convert recognizer output into a ``ParsedTranscript``."""

    def parse(self, raw: RecognizerOutput) -> ParsedTranscript:
        if not raw.transcripts:
            raise EmptyTranscriptError("Recognizer output contains no transcripts.")
        if not raw.items:
            raise EmptyTranscriptError("Recognizer output contains no items.")

        words = [item for item in raw.items if item.is_word]
        declared = raw.speaker_labels.segments if raw.speaker_labels else []

        if declared:
            segments = [self._build_segment(raw.items, words, seg) for seg in declared]
        else:
            segments = self._single_speaker(raw.items, words)

        duration = words[-1].end_time if words else 0.0
        if segments:
            duration = max(duration, max(seg.end_time for seg in segments))

        speakers = aggregate_speakers(segments)
        parsed = ParsedTranscript(
            full_text=raw.transcripts[0].transcript.strip(),
            duration_seconds=duration,
            speaker_count=len(speakers),
            segments=segments,
            speakers=speakers,
        )
        logger.debug(
            "Parsed transcript segments=%s speakers=%s duration=%.2f",
            len(segments),
            parsed.speaker_count,
            duration,
        )
        return parsed

    def parse_document(self, payload: Union[bytes, str, Mapping[str, Any]]) -> ParsedTranscript:
        """Parse a stored recognizer document (full envelope or bare ``results``)."""

        if isinstance(payload, (bytes, str)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise TranscriptFormatError(
                    f"Recognizer output is not valid JSON: {exc}"
                ) from exc
        if not isinstance(payload, Mapping):
            raise TranscriptFormatError("Recognizer output must be a JSON object.")

        results = payload.get("results", payload)
        try:
            raw = RecognizerOutput.model_validate(results)
        except ValidationError as exc:
            raise TranscriptFormatError(
                f"Recognizer output has an unexpected structure: {exc}"
            ) from exc
        return self.parse(raw)

    def format(self, transcript: ParsedTranscript) -> str:
        """Render segments as ``[start - end] speaker:`` blocks."""

        blocks = []
        for segment in transcript.segments:
            blocks.append(
                f"[{format_timestamp(segment.start_time)} - "
                f"{format_timestamp(segment.end_time)}] {segment.speaker_id}:\n"
                f"{segment.text}\n\n"
            )
        return "".join(blocks)

    def _single_speaker(
        self,
        items: List[RecognizerItem],
        words: List[RecognizerItem],
    ) -> List[TranscriptSegment]:
        if not words:
            return []
        return [
            TranscriptSegment(
                speaker_id=DEFAULT_SPEAKER_ID,
                start_time=words[0].start_time,
                end_time=words[-1].end_time,
                text=_render_text(items, lambda _item: True),
                confidence=_mean([word.confidence for word in words]),
            )
        ]

    def _build_segment(
        self,
        items: List[RecognizerItem],
        words: List[RecognizerItem],
        declared: RecognizerSpeakerSegment,
    ) -> TranscriptSegment:
        if declared.end_time < declared.start_time:
            raise TranscriptFormatError(
                f"Speaker segment for {declared.speaker_label} ends before it starts "
                f"({declared.start_time} > {declared.end_time})."
            )

        def in_range(item: RecognizerItem) -> bool:
            return declared.start_time <= item.start_time <= declared.end_time

        collected = [word for word in words if in_range(word)]
        return TranscriptSegment(
            speaker_id=declared.speaker_label,
            start_time=declared.start_time,
            end_time=declared.end_time,
            text=_render_text(items, in_range),
            confidence=_mean([word.confidence for word in collected]),
        )


__all__ = [
    "DEFAULT_SPEAKER_ID",
    "RecognizerOutput",
    "TranscriptParser",
    "aggregate_speakers",
    "format_timestamp",
]
