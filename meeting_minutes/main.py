"""Application entry point: logging setup and the workflow CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from typing import Optional, Sequence

from prometheus_client import start_http_server

from .config.dependencies import build_job_store, build_orchestrator
from .config.settings import settings
from .database import dispose_engine, init_models
from .domain.errors import MinutesPipelineError
from .domain.models import Job, JobStatus
from .pipelines.minutes import WorkflowInput

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Stream logs to stdout and a rotating file, plus a per-job audit file."""

    logging.getLogger().handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=1_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    pipeline_log_path = Path(settings.pipeline_log_file)
    pipeline_log_path.parent.mkdir(parents=True, exist_ok=True)
    pipeline_handler = RotatingFileHandler(
        pipeline_log_path,
        maxBytes=500_000,
        backupCount=5,
        encoding="utf-8",
    )
    pipeline_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    )
    pipeline_logger = logging.getLogger("meeting_minutes.pipeline")
    pipeline_logger.handlers.clear()
    pipeline_logger.addHandler(pipeline_handler)
    pipeline_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    noisy_loggers = [
        "botocore",
        "boto3",
        "urllib3",
        "sqlalchemy.engine",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meeting-minutes",
        description=f"{settings.app_name} workflow runner",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while running",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the job tables")

    run = commands.add_parser("run", help="Drive one job to COMPLETED or FAILED")
    run.add_argument("--job-id", required=True)
    run.add_argument("--user-id", required=True)
    run.add_argument("--audio-ref", required=True, help="s3://bucket/key of the recording")
    run.add_argument("--audio-size", type=int, default=0, help="Recording size in bytes")
    run.add_argument("--language-code", default=None)
    run.add_argument("--max-speakers", type=int, default=None)
    run.add_argument(
        "--create",
        action="store_true",
        help="Insert the job at SUBMITTED before running it",
    )

    resume = commands.add_parser(
        "resume",
        help="Drive every unfinished job of a user, WORKFLOW_MAX_CONCURRENT_JOBS at a time",
    )
    resume.add_argument("--user-id", required=True)

    jobs = commands.add_parser("list", help="List a user's jobs, newest first")
    jobs.add_argument("--user-id", required=True)
    jobs.add_argument("--limit", type=int, default=50)
    jobs.add_argument("--cursor", default=None)
    return parser


async def _run_job(args: argparse.Namespace) -> int:
    orchestrator = build_orchestrator()
    if args.create:
        await build_job_store().create(
            Job(
                job_id=args.job_id,
                user_id=args.user_id,
                audio_ref=args.audio_ref,
                audio_size_bytes=args.audio_size,
            )
        )

    job = await orchestrator.run(
        WorkflowInput(
            job_id=args.job_id,
            user_id=args.user_id,
            audio_ref=args.audio_ref,
            language_code=args.language_code,
            max_speakers=args.max_speakers,
        )
    )
    print(job.model_dump_json(by_alias=True, indent=2))
    return 0 if job.status is JobStatus.COMPLETED else 1


async def _resume_jobs(args: argparse.Namespace) -> int:
    results = await build_orchestrator().resume(args.user_id)
    failures = 0
    for result in results:
        if isinstance(result, BaseException):
            failures += 1
            logger.error("Resume failed: %s: %s", type(result).__name__, result)
        else:
            if result.status is not JobStatus.COMPLETED:
                failures += 1
            print(f"{result.job_id}\t{result.status.value}")
    return 1 if failures else 0


async def _list_jobs(args: argparse.Namespace) -> int:
    page = await build_job_store().query(args.user_id, limit=args.limit, cursor=args.cursor)
    print(page.model_dump_json(by_alias=True, indent=2))
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    try:
        if args.command == "init-db":
            await init_models()
            return 0
        if args.command == "run":
            return await _run_job(args)
        if args.command == "resume":
            return await _resume_jobs(args)
        return await _list_jobs(args)
    finally:
        await dispose_engine()


def main(argv: Optional[Sequence[str]] = None) -> int:
    _configure_logging()
    args = _build_parser().parse_args(argv)

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info("Serving Prometheus metrics on port %s", args.metrics_port)

    try:
        return asyncio.run(_dispatch(args))
    except MinutesPipelineError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
