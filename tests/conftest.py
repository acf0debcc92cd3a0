"""Pytest configuration and fixtures for LocalLens tests."""

from __future__ import annotations

import asyncio
import io

import pytest
import structlog

from locallens.common.ids import SequentialIds
from locallens.config import Config
from locallens.models import (
    EncodedImage,
    PlaceInfo,
    Position,
    RecognitionOutcome,
    Recognized,
    Story,
    StoryKind,
)
from locallens.sources.camera import FrameSource


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--hil",
        action="store_true",
        default=False,
        help="Run hardware-in-the-loop tests (requires real hardware)",
    )
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Modify test collection based on options."""
    # Skip HIL tests unless --hil flag is set
    if not config.getoption("--hil"):
        skip_hil = pytest.mark.skip(reason="Need --hil option to run")
        for item in items:
            if "hil" in item.keywords:
                item.add_marker(skip_hil)

    # Skip slow tests unless --slow flag is set
    if not config.getoption("--slow"):
        skip_slow = pytest.mark.skip(reason="Need --slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Drop structlog config bound to a test's captured stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config() -> Config:
    """Get test configuration."""
    cfg = Config()
    cfg.mock_mode = True
    cfg.device.mode = "development"
    cfg.device.log_level = "DEBUG"
    cfg.narration.player = "null"
    return cfg


@pytest.fixture
def fast_config(config: Config) -> Config:
    """Configuration with timings shrunk for end-to-end runs."""
    config.scheduler.tick_interval_ms = 10
    config.scheduler.dwell_interval_ms = 50
    config.scheduler.attempt_timeout_seconds = 1.0
    config.boot.tick_ms = 1
    config.boot.step_percent = 25
    config.location.interval_seconds = 0.01
    config.radar.discovery_delay_ms = 0
    return config


# Doubles


class FakeClock:
    """Millisecond clock moved by hand."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class StubFrameSource(FrameSource):
    """Frame source whose readiness is set by the test."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.captures = 0
        self.setups = 0
        self.teardowns = 0

    async def setup(self) -> None:
        self.setups += 1

    async def teardown(self) -> None:
        self.teardowns += 1

    def capture_frame(self) -> EncodedImage | None:
        if not self.ready:
            return None
        self.captures += 1
        return EncodedImage(data=b"\xff\xd8frame\xff\xd9", width=4, height=4)

    def get_status(self) -> dict:
        return {"ready": self.ready, "captures": self.captures}


class ControlledRecognizer:
    """Recognizer whose calls stay pending until the test resolves them."""

    def __init__(self) -> None:
        self.calls: list[tuple[EncodedImage, Position | None]] = []
        self._pending: list[asyncio.Future] = []

    async def recognize(
        self,
        image: EncodedImage,
        position: Position | None = None,
    ) -> RecognitionOutcome:
        self.calls.append((image, position))
        future = asyncio.get_running_loop().create_future()
        self._pending.append(future)
        return await future

    async def wait_called(self, count: int = 1) -> None:
        """Let dispatched attempts run until ``count`` calls have arrived."""
        for _ in range(100):
            if len(self.calls) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} recognize call(s), got {len(self.calls)}")

    async def wait_pending(self) -> None:
        """Let dispatched attempts run until one is waiting for an outcome."""
        for _ in range(100):
            if self.pending:
                return
            await asyncio.sleep(0)
        raise AssertionError("no pending recognize call")

    @property
    def pending(self) -> int:
        return sum(1 for f in self._pending if not f.done())

    def resolve(self, outcome: RecognitionOutcome) -> None:
        """Complete the oldest pending call with ``outcome``."""
        next(f for f in self._pending if not f.done()).set_result(outcome)

    def fail(self, error: Exception) -> None:
        """Fail the oldest pending call with ``error``."""
        next(f for f in self._pending if not f.done()).set_exception(error)


def make_place(
    name: str = "Grand Central",
    confidence: float = 0.92,
    place_id: str = "place-1",
) -> PlaceInfo:
    return PlaceInfo(
        id=place_id,
        name=name,
        category="Transport",
        description="Beaux-Arts railway terminal.",
        rating=4.8,
        confidence=confidence,
        year_built="1913",
    )


def make_recognized(name: str = "Grand Central", stories: int = 3) -> Recognized:
    place = make_place(name)
    return Recognized(
        place=place,
        stories=tuple(
            Story(
                id=f"story-{i}",
                kind=StoryKind.HISTORY,
                title=f"{name} story {i}",
                content="...",
                icon="History",
            )
            for i in range(1, stories + 1)
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def frames() -> StubFrameSource:
    return StubFrameSource()


@pytest.fixture
def recognizer() -> ControlledRecognizer:
    return ControlledRecognizer()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds(prefix="id")


# Mock fixtures


@pytest.fixture
def mock_pcm_bytes() -> bytes:
    """100ms of 24kHz mono 16-bit PCM silence."""
    return bytes(24000 * 2 // 10)


@pytest.fixture
def mock_image_bytes() -> bytes:
    """Create mock JPEG image."""
    from PIL import Image

    img = Image.new("RGB", (640, 480), color=(73, 109, 137))
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=85)
    return buffer.getvalue()
