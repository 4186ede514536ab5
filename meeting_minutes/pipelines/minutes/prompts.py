"""Prompt construction for the minutes generation stage."""

from __future__ import annotations

from meeting_minutes.domain.models import ParsedTranscript

from .parsing import format_timestamp

_INSTRUCTIONS = """You are an assistant that writes meeting minutes.
Read the meeting transcript above and extract:

1. summary: a concise summary of the meeting (3 to 5 sentences).
2. decisions: every decision that was agreed during the meeting.
3. nextActions: every follow-up task, with the assignee and due date when they are mentioned.

Reply with ONLY a JSON object in exactly this shape, without any extra text:
{
  "summary": "string",
  "decisions": [
    {"description": "string", "timestamp": "HH:MM:SS (optional)"}
  ],
  "nextActions": [
    {
      "description": "string",
      "assignee": "speaker id or name (optional)",
      "dueDate": "YYYY-MM-DD (optional)",
      "timestamp": "HH:MM:SS (optional)"
    }
  ]
}

Use empty arrays when there are no decisions or next actions."""


def render_transcript_for_prompt(transcript: ParsedTranscript) -> str:
    """Segment lines as ``[HH:MM:SS] speaker: text``, or the full text."""

    if not transcript.segments:
        return transcript.full_text
    return "".join(
        f"[{format_timestamp(segment.start_time)}] {segment.speaker_id}: {segment.text}\n\n"
        for segment in transcript.segments
    )


def build_minutes_prompt(transcript: ParsedTranscript) -> str:
    return (
        "# Meeting transcript\n\n"
        f"{render_transcript_for_prompt(transcript).rstrip()}\n\n"
        "# Instructions\n\n"
        f"{_INSTRUCTIONS}"
    )


__all__ = ["build_minutes_prompt", "render_transcript_for_prompt"]
