"""Tests for the command-line entry point and its wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

from meeting_minutes import main as cli
from meeting_minutes.config import dependencies
from meeting_minutes.config.settings import Settings, WorkflowConfig
from meeting_minutes.domain.errors import JobNotFoundError
from meeting_minutes.domain.models import Job, JobStatus


class _ResumingOrchestrator:
    def __init__(self, results) -> None:
        self.results = results
        self.users = []

    async def resume(self, user_id):
        self.users.append(user_id)
        return self.results


def _quiet_cli(monkeypatch, orchestrator) -> None:
    async def _no_engine() -> None:
        return None

    monkeypatch.setattr(cli, "_configure_logging", lambda: None)
    monkeypatch.setattr(cli, "dispose_engine", _no_engine)
    monkeypatch.setattr(cli, "build_orchestrator", lambda: orchestrator)


def test_resume_prints_each_job_and_succeeds_when_all_complete(monkeypatch, capsys):
    orchestrator = _ResumingOrchestrator(
        [Job(job_id="job-1", user_id="user-1", status=JobStatus.COMPLETED)]
    )
    _quiet_cli(monkeypatch, orchestrator)

    assert cli.main(["resume", "--user-id", "user-1"]) == 0
    assert orchestrator.users == ["user-1"]
    assert "job-1\tCOMPLETED" in capsys.readouterr().out


def test_resume_exit_code_flags_failed_jobs(monkeypatch, capsys):
    orchestrator = _ResumingOrchestrator(
        [
            Job(job_id="job-1", user_id="user-1", status=JobStatus.COMPLETED),
            Job(job_id="job-2", user_id="user-1", status=JobStatus.FAILED, error_message="boom"),
            JobNotFoundError("gone"),
        ]
    )
    _quiet_cli(monkeypatch, orchestrator)

    assert cli.main(["resume", "--user-id", "user-1"]) == 1
    assert "job-2\tFAILED" in capsys.readouterr().out


def test_orchestrator_picks_up_the_concurrency_cap(monkeypatch):
    monkeypatch.setattr(dependencies, "build_job_store", lambda session_factory=None: MagicMock())
    monkeypatch.setattr(dependencies, "build_transcription_adapter", lambda config: MagicMock())
    monkeypatch.setattr(dependencies, "build_minutes_generator", lambda config: MagicMock())
    monkeypatch.setattr(dependencies, "S3ArtifactStore", lambda region=None: MagicMock())
    config = Settings(workflow=WorkflowConfig(max_concurrent_jobs=4))

    orchestrator = dependencies.build_orchestrator(config)

    assert orchestrator._max_concurrent_jobs == 4
