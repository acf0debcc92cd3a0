"""Capabilities of the remote recognition, narration and Q&A service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from locallens.common.ids import IdGenerator, RandomIds
from locallens.common.logging import get_logger
from locallens.models import EncodedImage, NoPlace, Position, RecognitionOutcome
from locallens.remote.schema import (
    DEFAULT_ACCEPTANCE_THRESHOLD,
    normalize_payload,
    parse_payload,
)

logger = get_logger("remote")


@dataclass
class Answer:
    """Raw answer from the Q&A call."""

    text: str
    sources: list[str] = field(default_factory=list)


def with_sources(text: str, urls: Iterable[str | None]) -> str:
    """Append deduplicated source links, first-seen order, one per line."""
    unique = list(dict.fromkeys(u for u in urls if u))
    if not unique:
        return text
    return text + "\n\nSources:\n" + "\n".join(f"- {url}" for url in unique)


class RecognitionClient:
    """Landmark recognition.

    ``recognize`` never raises: transport errors, malformed responses and
    below-threshold results all come back as ``NoPlace``.
    """

    acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD
    ids: IdGenerator

    async def recognize(
        self,
        image: EncodedImage,
        position: Position | None = None,
    ) -> RecognitionOutcome:
        try:
            raw = await self._request_recognition(image, position)
            payload = parse_payload(raw)
        except Exception as e:
            logger.warning("recognition_failed", error=str(e), error_type=type(e).__name__)
            return NoPlace()

        return normalize_payload(payload, self.acceptance_threshold, self.ids)

    async def _request_recognition(
        self,
        image: EncodedImage,
        position: Position | None,
    ) -> str | dict[str, Any]:
        """Return the raw JSON response for one frame."""
        raise NotImplementedError


class NarrationClient:
    """Speech synthesis returning raw PCM (s16le, mono, 24 kHz)."""

    async def synthesize(self, text: str) -> bytes | None:
        try:
            return await self._request_speech(text)
        except Exception as e:
            logger.warning("narration_failed", error=str(e), error_type=type(e).__name__)
            return None

    async def _request_speech(self, text: str) -> bytes | None:
        raise NotImplementedError


class InquiryClient:
    """Free-text Q&A scoped to one place. Failures propagate to the caller."""

    empty_answer: str = "I'm sorry, I couldn't find specific details on that."

    async def ask(self, question: str, place_name: str) -> str:
        answer = await self._request_answer(question, place_name)
        return with_sources(answer.text or self.empty_answer, answer.sources)

    async def _request_answer(self, question: str, place_name: str) -> Answer:
        raise NotImplementedError


class RemoteService(RecognitionClient, NarrationClient, InquiryClient):
    """One provider offering all three capabilities."""

    provider_id = "base"

    def __init__(
        self,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        ids: IdGenerator | None = None,
    ) -> None:
        self.acceptance_threshold = acceptance_threshold
        self.ids = ids or RandomIds()

    async def close(self) -> None:
        """Release provider resources."""
        pass

    def get_status(self) -> dict:
        return {
            "provider": self.provider_id,
            "acceptance_threshold": self.acceptance_threshold,
        }
