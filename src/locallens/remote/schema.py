"""Wire schema of recognition responses and their normalization into outcomes."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from locallens.common.ids import IdGenerator, RandomIds
from locallens.models import (
    NoPlace,
    PlaceInfo,
    Position,
    RecognitionOutcome,
    Recognized,
    Story,
    StoryKind,
)

DEFAULT_ACCEPTANCE_THRESHOLD = 0.85
INSUFFICIENT_CERTAINTY = "Insufficient certainty"

RECOGNITION_PROMPT = """Act as a precision NYC spatial analyzer. Identify the landmark in this image.

STRICT RULES:
1. DO NOT GUESS. If the image is blurry, too dark, or shows a generic building without identifiable features, set 'place' to null.
2. Only return a name if you are at least 90% certain.
3. Provide a 'confidence' score between 0.0 and 1.0.

Return a JSON object with:
- place: { name, category, description, yearBuilt, rating, confidence } or null
- stories: array of 3 objects { type, title, content, icon } or empty array. type is one of history, secret, review, fact.
- reasoning: Brief internal note on identification certainty."""

NARRATION_PROMPT = "Narrate this like a cinematic tour guide: {text}"

INQUIRY_PROMPT = (
    "You are an expert NYC historian. Answer this question about {landmark}: {question}"
)


def recognition_prompt(position: Position | None = None) -> str:
    """Recognition instructions, with the device location as a hint when known."""
    if position is None:
        return RECOGNITION_PROMPT
    return (
        f"{RECOGNITION_PROMPT}\n\nThe camera is near latitude {position.latitude:.5f}, "
        f"longitude {position.longitude:.5f}. Use this only to disambiguate."
    )


class PlacePayload(BaseModel):
    """Place as returned by the remote service."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    category: str
    description: str
    year_built: str | None = Field(default=None, alias="yearBuilt")
    rating: float = 0.0
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("year_built", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class StoryPayload(BaseModel):
    """Story as returned by the remote service."""

    type: StoryKind = StoryKind.FACT
    title: str
    content: str
    icon: str = "Info"

    @field_validator("type", mode="before")
    @classmethod
    def _known_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {k.value for k in StoryKind}:
                return StoryKind.FACT
        return value


class RecognitionPayload(BaseModel):
    """Top-level recognition response."""

    place: PlacePayload | None = None
    stories: list[StoryPayload] = Field(default_factory=list)
    reasoning: str | None = None


def parse_payload(data: str | bytes | dict[str, Any]) -> RecognitionPayload:
    """Validate raw JSON text or a decoded mapping.

    Raises:
        ValueError: The payload is not valid JSON or does not match the schema.
    """
    if isinstance(data, (str, bytes)):
        data = json.loads(data or "{}")
    return RecognitionPayload.model_validate(data)


def normalize_payload(
    payload: RecognitionPayload,
    threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
    ids: IdGenerator | None = None,
) -> RecognitionOutcome:
    """Apply the acceptance threshold and assign identities.

    A missing place or one below ``threshold`` becomes ``NoPlace`` carrying
    the service's reasoning, or "Insufficient certainty" when it gave none.
    """
    ids = ids or RandomIds()
    place = payload.place

    if place is None or place.confidence < threshold:
        return NoPlace(reasoning=payload.reasoning or INSUFFICIENT_CERTAINTY)

    info = PlaceInfo(
        id=ids(),
        name=place.name,
        category=place.category,
        description=place.description,
        year_built=place.year_built,
        rating=place.rating,
        confidence=place.confidence,
    )
    stories = tuple(
        Story(
            id=ids(),
            kind=s.type,
            title=s.title,
            content=s.content,
            icon=s.icon,
        )
        for s in payload.stories
    )
    return Recognized(place=info, stories=stories)
