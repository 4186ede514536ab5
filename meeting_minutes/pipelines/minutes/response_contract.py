"""Pydantic models for validating the minutes JSON returned by the LLM.

Model output is treated as untrusted: required lists must be present,
descriptions must be non-empty strings, and any ids the model invents are
discarded (the generator assigns its own).
"""

from __future__ import annotations

import json
import re
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from meeting_minutes.domain.errors import ResponseParseError

_WRAPPING_FENCE = re.compile(r"\A```[A-Za-z0-9_-]*\s*(.*?)\s*```\Z", re.DOTALL)
_EMBEDDED_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_EMBEDDED_FENCE = re.compile(r"```[A-Za-z0-9_-]*\s*(.*?)\s*```", re.DOTALL)


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class LlmDecision(BaseModel):
    description: str
    timestamp: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("description")
    @classmethod
    def require_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description must not be empty")
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def normalise_optional(cls, value: object) -> object:
        return _blank_to_none(value)


class LlmNextAction(BaseModel):
    description: str
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    timestamp: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("description")
    @classmethod
    def require_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description must not be empty")
        return value

    @field_validator("assignee", "due_date", "timestamp", mode="before")
    @classmethod
    def normalise_optional(cls, value: object) -> object:
        return _blank_to_none(value)


class LlmMinutesResponse(BaseModel):
    summary: str = ""
    decisions: List[LlmDecision]
    next_actions: List[LlmNextAction] = Field(alias="nextActions")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("summary", mode="before")
    @classmethod
    def default_summary(cls, value: object) -> object:
        return "" if value is None else value

    @classmethod
    def from_json(cls, payload: str) -> "LlmMinutesResponse":
        cleaned = strip_code_fence(payload)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            # Prose around a fenced block: fall back to the block itself.
            embedded = extract_fenced_block(payload)
            if embedded is None or embedded == cleaned:
                raise ResponseParseError(f"Model output is not valid JSON: {exc}") from exc
            try:
                data = json.loads(embedded)
            except json.JSONDecodeError:
                raise ResponseParseError(f"Model output is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ResponseParseError(
                f"Model output does not match the minutes schema: {exc}"
            ) from exc


def strip_code_fence(payload: str) -> str:
    """Unwrap a payload that is entirely one fenced code block.

    Backticks inside an unfenced payload are left alone; only a fence that
    opens the trimmed payload and closes it is removed.
    """

    if not payload:
        return ""
    trimmed = payload.strip()
    match = _WRAPPING_FENCE.match(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def extract_fenced_block(payload: str) -> Optional[str]:
    """Return the first fenced block in ``payload`` (``json`` blocks first)."""

    if not payload:
        return None
    match = _EMBEDDED_JSON_FENCE.search(payload) or _EMBEDDED_FENCE.search(payload)
    return match.group(1).strip() if match else None


__all__ = [
    "LlmDecision",
    "LlmMinutesResponse",
    "LlmNextAction",
    "extract_fenced_block",
    "strip_code_fence",
]
