"""Meeting minutes pipeline package.

Modules are organised by the order in which a job moves through them:

1. `transcription` – submit audio to the speech-to-text provider and poll it.
2. `parsing` – turn recognizer output into speaker segments.
3. `prompts` / `response_contract` – the LLM request and its JSON schema.
4. `generator` – call the LLM with backoff and build the ``Minutes`` value.
5. `rendering` – the Markdown document persisted for each job.
6. `orchestrator` – the job state machine tying the stages together.
"""

from .generator import MinutesGenerator
from .orchestrator import WorkflowOrchestrator
from .parsing import TranscriptParser, format_timestamp
from .rendering import render_minutes_document
from .transcription import TranscriptionAdapter
from .types import PollResult, PollState, SubmissionRequest, WorkflowInput

__all__ = [
    "MinutesGenerator",
    "PollResult",
    "PollState",
    "SubmissionRequest",
    "TranscriptParser",
    "TranscriptionAdapter",
    "WorkflowInput",
    "WorkflowOrchestrator",
    "format_timestamp",
    "render_minutes_document",
]
