"""Minutes generation stage (Stage 04).

Builds the prompt, calls the generative text client with exponential
backoff, and maps the validated response into a ``Minutes`` value.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from meeting_minutes.application.interfaces import GenerativeTextClient
from meeting_minutes.domain.errors import ServiceUnavailableError, TransientProviderError
from meeting_minutes.domain.models import Decision, Minutes, NextAction, ParsedTranscript
from meeting_minutes.telemetry.metrics import observe_llm_invocation

from .parsing import aggregate_speakers
from .prompts import build_minutes_prompt
from .response_contract import LlmMinutesResponse

logger = logging.getLogger("meeting_minutes.pipeline")


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


def _new_id() -> str:
    return str(uuid4())


class MinutesGenerator:
    """Turn a parsed transcript into structured minutes via an LLM."""

    def __init__(
        self,
        client: GenerativeTextClient,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_tokens: Optional[int] = 4096,
        temperature: Optional[float] = 0.3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        id_factory: Callable[[], str] = _new_id,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._client = client
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._sleep = sleep
        self._id_factory = id_factory
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def generate(self, job_id: str, transcript: ParsedTranscript) -> Minutes:
        prompt = build_minutes_prompt(transcript)
        raw_response = await self._invoke_with_retry(job_id, prompt)
        response = LlmMinutesResponse.from_json(raw_response)
        return self._to_minutes(job_id, transcript, response)

    async def _invoke_with_retry(self, job_id: str, prompt: str) -> str:
        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                raw_response = await self._client.invoke(
                    prompt=prompt,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                )
                if not raw_response or not raw_response.strip():
                    raise TransientProviderError("Generative model returned an empty response.")
            except Exception as exc:
                last_error = exc
                observe_llm_invocation("failure")
                logger.warning(
                    "LLM invocation failed job=%s attempt=%s/%s: %s",
                    job_id,
                    attempt,
                    self._max_retries,
                    exc,
                )
                if attempt < self._max_retries:
                    await self._sleep(self._base_delay * 2 ** (attempt - 1))
                continue

            observe_llm_invocation("success")
            logger.info(
                "Raw LLM response job=%s attempt=%s: %s",
                job_id,
                attempt,
                _truncate(raw_response),
            )
            return raw_response

        observe_llm_invocation("exhausted")
        raise ServiceUnavailableError(self._max_retries, last_error) from last_error

    def _to_minutes(
        self,
        job_id: str,
        transcript: ParsedTranscript,
        response: LlmMinutesResponse,
    ) -> Minutes:
        # Ids always come from here, never from the model.
        decisions = [
            Decision(
                id=self._id_factory(),
                description=item.description,
                timestamp=item.timestamp,
            )
            for item in response.decisions
        ]
        next_actions = [
            NextAction(
                id=self._id_factory(),
                description=item.description,
                assignee=item.assignee,
                due_date=item.due_date,
                timestamp=item.timestamp,
            )
            for item in response.next_actions
        ]
        return Minutes(
            job_id=job_id,
            generated_at=self._now(),
            summary=response.summary,
            decisions=decisions,
            next_actions=next_actions,
            transcript=transcript.full_text,
            speakers=aggregate_speakers(transcript.segments),
        )


__all__ = ["MinutesGenerator"]
