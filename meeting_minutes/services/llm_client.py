"""Thin Bedrock client wrapper for single-prompt LLM invocations."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from meeting_minutes.application.interfaces import GenerativeTextClient
from meeting_minutes.services.aws import create_boto3_client, translate_aws_error

logger = logging.getLogger(__name__)


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip(), validate=True)
    except (binascii.Error, ValueError):
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


class BedrockLlmClient(GenerativeTextClient):
    """Invoke Amazon Bedrock models through the `converse` API."""

    def __init__(
        self,
        client=None,
        *,
        model_id: str,
        region: str | None = None,
        api_key: str | None = None,
        default_max_tokens: int = 4096,
        default_temperature: float = 0.3,
    ) -> None:
        self._model_id = model_id
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature

        if client is None:
            api_key_tuple = _decode_bedrock_api_key(api_key)
            client = create_boto3_client(
                "bedrock-runtime",
                region_name=region,
                aws_access_key_id=api_key_tuple[0] if api_key_tuple else None,
                aws_secret_access_key=api_key_tuple[1] if api_key_tuple else None,
            )
        self._client = client

    async def invoke(
        self,
        *,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Run a Bedrock `converse` call and return the aggregate text output."""

        inference_cfg = {
            "maxTokens": max_tokens or self._default_max_tokens,
            "temperature": (
                temperature if temperature is not None else self._default_temperature
            ),
        }

        def _call() -> str:
            response = self._client.converse(
                modelId=self._model_id,
                messages=[{"role": "user", "content": [{"text": prompt}]}],
                inferenceConfig=inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            return "\n".join(texts).strip()

        try:
            result = await run_in_threadpool(_call)
        except (BotoCoreError, ClientError) as exc:
            raise translate_aws_error(exc, "Bedrock converse") from exc

        logger.debug("Bedrock model=%s returned %s characters", self._model_id, len(result))
        return result


__all__ = ["BedrockLlmClient"]
