"""Shared AWS helpers for service clients."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from meeting_minutes.config.settings import settings
from meeting_minutes.domain.errors import (
    HandleConflictError,
    ProviderError,
    TransientProviderError,
)

_TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalFailureException",
        "InternalServerException",
        "LimitExceededException",
        "ModelNotReadyException",
        "ModelTimeoutException",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "SlowDown",
        "ThrottlingException",
        "TooManyRequestsException",
    }
)


def create_boto3_client(
    service_name: str,
    *,
    region_name: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
) -> boto3.client:
    """Instantiate a boto3 client using configured credentials if available."""

    region = region_name or settings.s3.region
    client_kwargs: dict[str, Any] = {"region_name": region}
    if aws_access_key_id and aws_secret_access_key:
        client_kwargs["aws_access_key_id"] = aws_access_key_id
        client_kwargs["aws_secret_access_key"] = aws_secret_access_key
    elif settings.s3.access_key and settings.s3.secret_key:
        client_kwargs["aws_access_key_id"] = settings.s3.access_key
        client_kwargs["aws_secret_access_key"] = settings.s3.secret_key
    return boto3.client(service_name, **client_kwargs)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "") or ""


def translate_aws_error(exc: Exception, action: str) -> ProviderError:
    """Map a botocore failure onto the pipeline's provider error classes."""

    if isinstance(exc, ClientError):
        code = error_code(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        message = f"{action} failed ({code or status}): {exc}"
        if code == "ConflictException":
            return HandleConflictError(message)
        if code in _TRANSIENT_ERROR_CODES or status >= 500:
            return TransientProviderError(message)
        return ProviderError(message)
    if isinstance(exc, BotoCoreError):
        return TransientProviderError(f"{action} failed: {exc}")
    return ProviderError(f"{action} failed: {exc}")


__all__ = ["create_boto3_client", "error_code", "translate_aws_error"]
