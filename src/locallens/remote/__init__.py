"""Remote recognition, narration and Q&A service."""

from locallens.remote.base import (
    Answer,
    InquiryClient,
    NarrationClient,
    RecognitionClient,
    RemoteService,
    with_sources,
)
from locallens.remote.factory import create_service
from locallens.remote.mock import MockService
from locallens.remote.schema import normalize_payload, parse_payload

__all__ = [
    "Answer",
    "InquiryClient",
    "NarrationClient",
    "RecognitionClient",
    "RemoteService",
    "with_sources",
    "create_service",
    "MockService",
    "normalize_payload",
    "parse_payload",
]
