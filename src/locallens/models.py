"""Domain types shared by the lens core, the sources and the remote service."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class StoryKind(str, Enum):
    """Kind tag of a story card."""

    HISTORY = "history"
    SECRET = "secret"
    REVIEW = "review"
    FACT = "fact"


class AppScreen(str, Enum):
    """Exclusive screens of the lens. Detail is a flag, not a screen."""

    BOOTING = "booting"
    SCANNING = "scanning"
    MAP_VIEW = "map_view"


@dataclass(frozen=True)
class PlaceInfo:
    """A recognized landmark."""

    id: str
    name: str
    category: str
    description: str
    rating: float
    confidence: float
    year_built: str | None = None


@dataclass(frozen=True)
class Story:
    """Short narrative attached to exactly one place."""

    id: str
    kind: StoryKind
    title: str
    content: str
    icon: str


@dataclass(frozen=True)
class Recognized:
    """Outcome carrying an accepted place and its story set."""

    place: PlaceInfo
    stories: tuple[Story, ...] = ()


@dataclass(frozen=True)
class NoPlace:
    """Outcome carrying no place and an optional rejection reason."""

    reasoning: str | None = None


RecognitionOutcome = Union[Recognized, NoPlace]


@dataclass(frozen=True)
class EncodedImage:
    """Still frame encoded for transport."""

    data: bytes
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0
    captured_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Position:
    """Geolocation sample."""

    latitude: float
    longitude: float
    accuracy_m: float | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ChatTurn:
    """One line of the landmark Q&A log."""

    role: str  # "user" or "ai"
    text: str


@dataclass(frozen=True)
class MapNode:
    """Nearby point of interest shown on the radar."""

    id: str
    name: str
    distance_m: float
    bearing_deg: float
    category: str

    @property
    def distance_label(self) -> str:
        return f"{self.distance_m:.0f}m"
