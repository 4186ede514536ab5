"""Service layer helpers for external integrations."""

from .llm_client import BedrockLlmClient
from .storage import (
    S3ArtifactStore,
    build_object_ref,
    normalise_object_ref,
    parse_object_ref,
)
from .transcribe import AmazonTranscribeClient

__all__ = [
    "AmazonTranscribeClient",
    "BedrockLlmClient",
    "S3ArtifactStore",
    "build_object_ref",
    "normalise_object_ref",
    "parse_object_ref",
]
