"""Amazon Transcribe integration using batch transcription jobs."""

from __future__ import annotations

import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from meeting_minutes.application.interfaces import (
    ProviderJobStatus,
    SpeechToTextClient,
    TranscriptionJobRequest,
)
from meeting_minutes.services.aws import create_boto3_client, translate_aws_error

logger = logging.getLogger(__name__)


class AmazonTranscribeClient(SpeechToTextClient):
    """Start and inspect Amazon Transcribe jobs with speaker labelling."""

    def __init__(self, client=None, *, region: str | None = None) -> None:
        self._client = client or create_boto3_client("transcribe", region_name=region)

    async def start_job(self, request: TranscriptionJobRequest) -> None:
        kwargs = {
            "TranscriptionJobName": request.handle,
            "LanguageCode": request.language_code,
            "MediaFormat": request.media_format,
            "Media": {"MediaFileUri": request.audio_uri},
            "OutputBucketName": request.output_bucket,
            "OutputKey": request.output_key,
        }
        if request.speaker_labels:
            kwargs["Settings"] = {
                "ShowSpeakerLabels": True,
                "MaxSpeakerLabels": request.max_speakers,
            }

        try:
            await run_in_threadpool(self._client.start_transcription_job, **kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise translate_aws_error(exc, "StartTranscriptionJob") from exc

        logger.info(
            "Started transcription job handle=%s media=%s language=%s",
            request.handle,
            request.audio_uri,
            request.language_code,
        )

    async def get_job(self, handle: str) -> ProviderJobStatus:
        try:
            response = await run_in_threadpool(
                self._client.get_transcription_job,
                TranscriptionJobName=handle,
            )
        except (BotoCoreError, ClientError) as exc:
            raise translate_aws_error(exc, "GetTranscriptionJob") from exc

        job = response.get("TranscriptionJob", {})
        return ProviderJobStatus(
            state=job.get("TranscriptionJobStatus", ""),
            transcript_uri=job.get("Transcript", {}).get("TranscriptFileUri"),
            failure_reason=job.get("FailureReason"),
        )


__all__ = ["AmazonTranscribeClient"]
