"""Markdown rendering of the minutes document stored next to each job."""

from __future__ import annotations

from meeting_minutes.domain.models import Minutes


def _suffix(timestamp: str | None) -> str:
    return f" ({timestamp})" if timestamp else ""


def render_minutes_document(minutes: Minutes, formatted_transcript: str) -> str:
    lines = [
        "# Meeting Minutes",
        "",
        f"**Generated at**: {minutes.generated_at.isoformat()}",
        "",
        "## Summary",
        "",
        minutes.summary or "No summary was provided.",
        "",
        "## Decisions",
        "",
    ]

    if minutes.decisions:
        for index, decision in enumerate(minutes.decisions, start=1):
            lines.append(f"{index}. {decision.description}{_suffix(decision.timestamp)}")
    else:
        lines.append("No decisions were recorded.")

    lines += ["", "## Next Actions", ""]
    if minutes.next_actions:
        for index, action in enumerate(minutes.next_actions, start=1):
            lines.append(f"{index}. {action.description}{_suffix(action.timestamp)}")
            if action.assignee:
                lines.append(f"   - Assignee: {action.assignee}")
            if action.due_date:
                lines.append(f"   - Due: {action.due_date}")
    else:
        lines.append("No next actions were recorded.")

    lines += ["", "## Full Transcript", "", formatted_transcript.rstrip() or minutes.transcript]
    return "\n".join(lines) + "\n"


__all__ = ["render_minutes_document"]
