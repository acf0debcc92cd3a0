"""Scripted remote service for development and tests."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Sequence

from locallens.common.ids import IdGenerator
from locallens.models import EncodedImage, Position
from locallens.remote.base import Answer, RemoteService
from locallens.remote.schema import DEFAULT_ACCEPTANCE_THRESHOLD

NO_PLACE_PAYLOAD: dict[str, Any] = {
    "place": None,
    "stories": [],
    "reasoning": "Generic facade without identifiable features.",
}

GRAND_CENTRAL_PAYLOAD: dict[str, Any] = {
    "place": {
        "name": "Grand Central Terminal",
        "category": "Transport",
        "description": "Beaux-Arts railway terminal in Midtown Manhattan.",
        "yearBuilt": "1913",
        "rating": 4.8,
        "confidence": 0.92,
    },
    "stories": [
        {
            "type": "history",
            "title": "Saved by a Landmark Case",
            "content": "A 1978 Supreme Court ruling preserved the terminal from demolition.",
            "icon": "History",
        },
        {
            "type": "secret",
            "title": "The Whispering Gallery",
            "content": "Speak into one corner of the arches and be heard across the passage.",
            "icon": "Sparkles",
        },
        {
            "type": "fact",
            "title": "Backwards Sky",
            "content": "The celestial ceiling mural shows the constellations in reverse.",
            "icon": "Star",
        },
    ],
    "reasoning": "Distinctive facade with clock and sculpture group.",
}

MOCK_ANSWER = Answer(
    text="Grand Central opened in 1913 and handles hundreds of thousands of visitors a day.",
    sources=[
        "https://en.wikipedia.org/wiki/Grand_Central_Terminal",
        "https://www.grandcentralterminal.com/history/",
        "https://en.wikipedia.org/wiki/Grand_Central_Terminal",
    ],
)

# 24 kHz s16le mono
_BYTES_PER_SECOND = 24000 * 2


class MockService(RemoteService):
    """Mock remote service.

    Recognition replays ``script`` in a loop. Each entry is either a payload
    mapping or an exception instance, which is raised to simulate a
    transport failure.
    """

    provider_id = "mock"

    def __init__(
        self,
        script: Sequence[dict[str, Any] | Exception] | None = None,
        answer: Answer | Exception | None = None,
        delay_seconds: float = 0.0,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        ids: IdGenerator | None = None,
    ) -> None:
        super().__init__(acceptance_threshold, ids)
        self._script = itertools.cycle(list(script or [NO_PLACE_PAYLOAD, GRAND_CENTRAL_PAYLOAD]))
        self._answer = answer if answer is not None else MOCK_ANSWER
        self.delay_seconds = delay_seconds
        self.recognition_calls = 0
        self.spoken: list[str] = []
        self.questions: list[tuple[str, str]] = []

    async def _request_recognition(
        self,
        image: EncodedImage,
        position: Position | None,
    ) -> dict[str, Any]:
        self.recognition_calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        entry = next(self._script)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def _request_speech(self, text: str) -> bytes | None:
        self.spoken.append(text)
        # Silence, roughly a tenth of a second per word
        seconds = max(1, len(text.split())) / 10
        return bytes(int(seconds * _BYTES_PER_SECOND) // 2 * 2)

    async def _request_answer(self, question: str, place_name: str) -> Answer:
        self.questions.append((question, place_name))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if isinstance(self._answer, Exception):
            raise self._answer
        return self._answer

    def get_status(self) -> dict:
        status = super().get_status()
        status["recognition_calls"] = self.recognition_calls
        return status
