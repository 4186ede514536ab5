from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import BigInteger, Column, DateTime, Float, String, Text, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from meeting_minutes.application.interfaces import JobStoreInterface
from meeting_minutes.domain.errors import (
    InputValidationError,
    JobNotFoundError,
    PersistenceError,
)
from meeting_minutes.domain.models import (
    Job,
    JobPage,
    JobStatus,
    JobUpdate,
    validate_job_update,
)


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobEntity(Base):
    """SQLAlchemy job entity keyed by (job_id, user_id)"""

    __tablename__ = "minutes_jobs"

    job_id = Column(String(128), primary_key=True)
    user_id = Column(String(128), primary_key=True, index=True)
    status = Column(String(20), nullable=False, index=True)
    audio_ref = Column(Text, nullable=False, default="")
    audio_size_bytes = Column(BigInteger, nullable=False, default=0)
    audio_duration_seconds = Column(Float)
    transcription_job_handle = Column(String(200))
    transcript_artifact_ref = Column(Text)
    minutes_artifact_ref = Column(Text)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


def _to_domain(entity: JobEntity) -> Job:
    return Job(
        job_id=entity.job_id,
        user_id=entity.user_id,
        status=JobStatus(entity.status),
        created_at=entity.created_at,
        updated_at=entity.updated_at,
        audio_ref=entity.audio_ref,
        audio_size_bytes=entity.audio_size_bytes or 0,
        audio_duration_seconds=entity.audio_duration_seconds,
        transcription_job_handle=entity.transcription_job_handle,
        transcript_artifact_ref=entity.transcript_artifact_ref,
        minutes_artifact_ref=entity.minutes_artifact_ref,
        error_message=entity.error_message,
    )


class SQLAlchemyJobStore(JobStoreInterface):
    """SQLAlchemy implementation of the job store.

    Each call opens its own short session so one store instance can be
    shared by many concurrently running workflows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._now = now

    async def create(self, job: Job) -> Job:
        timestamp = self._now()
        entity = JobEntity(
            job_id=job.job_id,
            user_id=job.user_id,
            status=job.status.value,
            audio_ref=job.audio_ref,
            audio_size_bytes=job.audio_size_bytes,
            audio_duration_seconds=job.audio_duration_seconds,
            transcription_job_handle=job.transcription_job_handle,
            transcript_artifact_ref=job.transcript_artifact_ref,
            minutes_artifact_ref=job.minutes_artifact_ref,
            error_message=job.error_message,
            created_at=job.created_at or timestamp,
            updated_at=timestamp,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(entity)
                    created = _to_domain(entity)
        except IntegrityError as exc:
            raise PersistenceError(f"Job {job.job_id} already exists.") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create job {job.job_id}: {exc}") from exc
        return created

    async def get(self, job_id: str, user_id: str) -> Optional[Job]:
        try:
            async with self._session_factory() as session:
                entity = await session.get(JobEntity, (job_id, user_id))
                return _to_domain(entity) if entity else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load job {job_id}: {exc}") from exc

    async def update(self, job_id: str, user_id: str, update: JobUpdate) -> Job:
        """Conditional partial update; rejects terminal jobs and backward moves."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    entity = await session.get(
                        JobEntity,
                        (job_id, user_id),
                        with_for_update=True,
                    )
                    if entity is None:
                        raise JobNotFoundError(
                            f"Job {job_id} for user {user_id} does not exist."
                        )
                    validate_job_update(JobStatus(entity.status), update)

                    for field, value in update.changes().items():
                        if isinstance(value, JobStatus):
                            value = value.value
                        setattr(entity, field, value)
                    entity.updated_at = self._now()
                    updated = _to_domain(entity)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update job {job_id}: {exc}") from exc
        return updated

    async def query(
        self,
        user_id: str,
        *,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> JobPage:
        """Newest-first page of a user's jobs; ``cursor`` is an opaque offset."""

        if limit < 1:
            raise InputValidationError("limit must be positive.")
        try:
            offset = int(cursor) if cursor else 0
        except ValueError as exc:
            raise InputValidationError(f"Invalid cursor: {cursor!r}") from exc
        if offset < 0:
            raise InputValidationError(f"Invalid cursor: {cursor!r}")

        statement = (
            select(JobEntity)
            .where(JobEntity.user_id == user_id)
            .order_by(JobEntity.created_at.desc(), JobEntity.job_id.desc())
            .offset(offset)
            .limit(limit + 1)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                entities = list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to query jobs for {user_id}: {exc}") from exc

        has_more = len(entities) > limit
        return JobPage(
            items=[_to_domain(entity) for entity in entities[:limit]],
            next_cursor=str(offset + limit) if has_more else None,
        )


async def init_models(engine: AsyncEngine) -> None:
    """Create tables that are not yet present."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
