"""Error taxonomy shared by every stage of the minutes pipeline.

Components raise these; the workflow orchestrator is the single place that
turns them into a terminal ``FAILED`` job with a readable ``error_message``.
"""

from __future__ import annotations


class MinutesPipelineError(RuntimeError):
    """Base class for all pipeline failures."""


class InputValidationError(MinutesPipelineError):
    """Raised when a submission is malformed (missing ids or audio reference)."""


class ProviderError(MinutesPipelineError):
    """Raised when an external provider rejects or fails a request."""


class TransientProviderError(ProviderError):
    """Raised for likely-temporary provider conditions (throttling, 5xx, network)."""


class HandleConflictError(ProviderError):
    """Raised when a transcription handle already exists at the provider."""


class ProviderOutputError(MinutesPipelineError):
    """Raised when a provider returned structurally invalid output."""


class EmptyTranscriptError(ProviderOutputError):
    """Raised when recognizer output contains no transcripts or no items."""


class MissingArtifactError(ProviderOutputError):
    """Raised when an expected artifact (transcript file, object) is absent."""


class TranscriptFormatError(ProviderOutputError):
    """Raised when recognizer output is not valid JSON of the expected shape."""


class ResponseParseError(MinutesPipelineError):
    """Raised when the generative model output does not match the minutes schema."""


class ServiceUnavailableError(MinutesPipelineError):
    """Raised when the generative text service failed on every attempt."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Generative text service unavailable after {attempts} attempt(s): "
            f"{last_error}"
        )


class StorageError(MinutesPipelineError):
    """Raised when reading or writing an artifact fails."""


class PersistenceError(MinutesPipelineError):
    """Raised when the job store cannot complete a read or write."""


class JobNotFoundError(PersistenceError):
    """Raised when a job record does not exist for the given key."""


class InvalidTransitionError(MinutesPipelineError):
    """Raised when an update would move a job backwards or touch a terminal job."""


class OrchestrationError(MinutesPipelineError):
    """Raised when the orchestrator can no longer keep job state consistent."""


class WorkflowTimeoutError(MinutesPipelineError):
    """Raised internally when a workflow exceeds its hard time ceiling."""


class WorkflowCancelledError(MinutesPipelineError):
    """Raised internally when a workflow's cancellation signal is set."""


__all__ = [
    "EmptyTranscriptError",
    "HandleConflictError",
    "InputValidationError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "MinutesPipelineError",
    "MissingArtifactError",
    "OrchestrationError",
    "PersistenceError",
    "ProviderError",
    "ProviderOutputError",
    "ResponseParseError",
    "ServiceUnavailableError",
    "StorageError",
    "TranscriptFormatError",
    "TransientProviderError",
    "WorkflowCancelledError",
    "WorkflowTimeoutError",
]
