"""Factories that wire the default AWS- and SQL-backed components.

Only this module (and the CLI) reads ``settings``; every component receives
its collaborators and tuning values through its constructor.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from meeting_minutes.config.settings import Settings, settings as default_settings
from meeting_minutes.database import get_session_factory
from meeting_minutes.infrastructure.persistence.repositories_sqlalchemy import (
    SQLAlchemyJobStore,
)
from meeting_minutes.pipelines.minutes import (
    MinutesGenerator,
    TranscriptionAdapter,
    TranscriptParser,
    WorkflowOrchestrator,
)
from meeting_minutes.services.llm_client import BedrockLlmClient
from meeting_minutes.services.storage import S3ArtifactStore, build_object_ref
from meeting_minutes.services.transcribe import AmazonTranscribeClient


def build_job_store(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> SQLAlchemyJobStore:
    return SQLAlchemyJobStore(session_factory or get_session_factory())


def build_transcription_adapter(config: Settings = default_settings) -> TranscriptionAdapter:
    transcribe = config.transcribe
    return TranscriptionAdapter(
        AmazonTranscribeClient(region=transcribe.region),
        output_bucket=config.s3.output_bucket,
        language_code=transcribe.language_code,
        default_media_format=transcribe.media_format,
        max_speakers=transcribe.max_speakers,
        job_name_prefix=transcribe.job_name_prefix,
        submit_attempts=transcribe.submit_retries,
    )


def build_minutes_generator(config: Settings = default_settings) -> MinutesGenerator:
    bedrock = config.bedrock
    client = BedrockLlmClient(
        model_id=bedrock.model_id,
        region=bedrock.region,
        api_key=bedrock.api_key.get_secret_value() if bedrock.api_key else None,
        default_max_tokens=bedrock.max_tokens,
        default_temperature=bedrock.temperature,
    )
    return MinutesGenerator(
        client,
        max_retries=config.minutes.max_retries,
        base_delay=config.minutes.retry_base_delay_seconds,
        max_tokens=bedrock.max_tokens,
        temperature=bedrock.temperature,
    )


def build_orchestrator(
    config: Settings = default_settings,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> WorkflowOrchestrator:
    """Assemble the orchestrator with production collaborators."""

    workflow = config.workflow
    return WorkflowOrchestrator(
        job_store=build_job_store(session_factory),
        transcription=build_transcription_adapter(config),
        parser=TranscriptParser(),
        generator=build_minutes_generator(config),
        artifact_store=S3ArtifactStore(region=config.s3.region),
        artifact_root=build_object_ref(config.s3.output_bucket, "").rstrip("/"),
        poll_interval=workflow.poll_interval_seconds,
        timeout=workflow.timeout_seconds,
        persist_attempts=workflow.persist_attempts,
        persist_retry_delay=workflow.persist_retry_delay_seconds,
        max_consecutive_poll_errors=workflow.max_consecutive_poll_errors,
        max_concurrent_jobs=workflow.max_concurrent_jobs,
    )


__all__ = [
    "build_job_store",
    "build_minutes_generator",
    "build_orchestrator",
    "build_transcription_adapter",
]
