"""S3 storage helpers for job artifacts."""

from __future__ import annotations

import logging
import re
from typing import Tuple
from urllib.parse import unquote, urlparse

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from meeting_minutes.application.interfaces import ArtifactStoreInterface
from meeting_minutes.domain.errors import MissingArtifactError, StorageError
from meeting_minutes.services.aws import create_boto3_client, error_code

logger = logging.getLogger(__name__)

# bucket.s3.amazonaws.com, bucket.s3.region.amazonaws.com, bucket.s3-region.amazonaws.com
_VIRTUAL_HOST = re.compile(r"^(?P<bucket>.+)\.s3[.-](?:[a-z0-9-]+\.)?amazonaws\.com$")
_PATH_HOST = re.compile(r"^s3[.-](?:[a-z0-9-]+\.)?amazonaws\.com$|^s3\.amazonaws\.com$")
_MISSING_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "404"})


def build_object_ref(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key.lstrip('/')}"


def parse_object_ref(ref: str) -> Tuple[str, str]:
    """Split ``s3://bucket/key`` or an S3 https URL into (bucket, key).

    Raises ``ValueError`` for anything that does not name a single object.
    """

    parsed = urlparse((ref or "").strip())
    if parsed.scheme == "s3":
        bucket, key = parsed.netloc, parsed.path.lstrip("/")
    elif parsed.scheme == "https":
        host = parsed.netloc.lower()
        path = unquote(parsed.path.lstrip("/"))
        virtual = _VIRTUAL_HOST.match(host)
        if virtual:
            bucket, key = virtual.group("bucket"), path
        elif _PATH_HOST.match(host):
            bucket, _, key = path.partition("/")
        else:
            raise ValueError(f"Not an S3 URL: {ref!r}")
    else:
        raise ValueError(f"Unsupported object reference: {ref!r}")

    if not bucket or not key:
        raise ValueError(f"Object reference needs a bucket and a key: {ref!r}")
    return bucket, key


def normalise_object_ref(ref: str) -> str:
    """Return the canonical ``s3://bucket/key`` form of an object reference."""

    return build_object_ref(*parse_object_ref(ref))


class S3ArtifactStore(ArtifactStoreInterface):
    """Read and write artifacts addressed by ``s3://`` references."""

    def __init__(self, client=None, *, region: str | None = None) -> None:
        self._client = client or create_boto3_client("s3", region_name=region)

    async def put(self, ref: str, data: bytes, content_type: str) -> None:
        bucket, key = self._split(ref)
        try:
            await run_in_threadpool(
                self._client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {ref}: {exc}") from exc
        logger.debug("Stored artifact %s (%s bytes)", ref, len(data))

    async def get(self, ref: str) -> bytes:
        bucket, key = self._split(ref)

        def _read() -> bytes:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()

        try:
            return await run_in_threadpool(_read)
        except ClientError as exc:
            if error_code(exc) in _MISSING_CODES:
                raise MissingArtifactError(f"Artifact not found: {ref}") from exc
            raise StorageError(f"Failed to download {ref}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to download {ref}: {exc}") from exc

    @staticmethod
    def _split(ref: str) -> Tuple[str, str]:
        try:
            return parse_object_ref(ref)
        except ValueError as exc:
            raise StorageError(str(exc)) from exc


__all__ = [
    "S3ArtifactStore",
    "build_object_ref",
    "normalise_object_ref",
    "parse_object_ref",
]
