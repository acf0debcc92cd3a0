"""Recognition scheduler.

Decides when to attempt recognition, keeps at most one attempt outstanding
and merges each completed attempt into ``SchedulerState``.

Cadence: ``tick(now_ms)`` is driven every ``tick_interval_ms`` (2 s) while
scanning is allowed. An attempt starts only when nothing is in flight and
``dwell_ms`` (6 s) has elapsed since the last *completed* attempt. A tick
that finds no frame changes nothing, so the next tick may retry at once.

Merge rules:
    Recognized  -> replace place and stories, clear reasoning
    NoPlace     -> keep held place and stories, store reasoning if any
    failure     -> same as NoPlace(None), logged
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Callable, Protocol

from locallens.common.events import EventBus
from locallens.common.logging import get_logger
from locallens.models import (
    EncodedImage,
    NoPlace,
    PlaceInfo,
    Position,
    RecognitionOutcome,
    Recognized,
    Story,
)
from locallens.sources.camera import FrameSource

DEFAULT_DWELL_MS = 6000
DEFAULT_TIMEOUT_SECONDS = 15.0


class Recognizer(Protocol):
    async def recognize(
        self,
        image: EncodedImage,
        position: Position | None = None,
    ) -> RecognitionOutcome: ...


class PositionProvider(Protocol):
    @property
    def latest(self) -> Position | None: ...


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass(frozen=True)
class SchedulerState:
    """Snapshot of what the scheduler holds. Renderers only read it."""

    last_attempt_at: int | None = None
    attempt_started_at: int | None = None
    in_flight: bool = False
    place: PlaceInfo | None = None
    stories: tuple[Story, ...] = ()
    reasoning: str | None = None

    @property
    def locked(self) -> bool:
        return self.place is not None


class RecognitionScheduler:
    """Owns ``SchedulerState`` and the single outstanding recognition attempt."""

    def __init__(
        self,
        frame_source: FrameSource,
        client: Recognizer,
        location: PositionProvider | None = None,
        clock: Callable[[], int] = monotonic_ms,
        gate: Callable[[], bool] | None = None,
        event_bus: EventBus | None = None,
        dwell_ms: int = DEFAULT_DWELL_MS,
        timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.frame_source = frame_source
        self.client = client
        self.location = location
        self.clock = clock
        self.gate = gate
        self.event_bus = event_bus
        self.dwell_ms = dwell_ms
        self.timeout_seconds = timeout_seconds

        self._state = SchedulerState()
        # Bumped on every dispatch and reset; identifies the current attempt
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self.attempts = 0
        self.logger = get_logger("scheduler")

    @property
    def state(self) -> SchedulerState:
        return self._state

    def due(self, now_ms: int) -> bool:
        """Whether the dwell interval has elapsed at ``now_ms``."""
        last = self._state.last_attempt_at
        return last is None or now_ms - last >= self.dwell_ms

    def tick(self, now_ms: int) -> bool:
        """Start an attempt if every guard passes.

        Returns:
            True if an attempt was dispatched.
        """
        if self.gate is not None and not self.gate():
            return False
        if self._state.in_flight:
            return False
        if not self.due(now_ms):
            return False

        frame = self.frame_source.capture_frame()
        if frame is None:
            return False

        # Raises outside a running loop, so it precedes every state change
        loop = asyncio.get_running_loop()

        # Set before dispatch; the completion handler is the only place it clears
        self._generation += 1
        generation = self._generation
        self._state = replace(self._state, in_flight=True, attempt_started_at=now_ms)
        self.attempts += 1

        position = self.location.latest if self.location else None
        task = loop.create_task(self._attempt(frame, position, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self.logger.debug("recognition_attempt_started", attempt=generation, now_ms=now_ms)
        self._emit("scheduler.attempt_started", attempt=generation, started_at=now_ms)
        return True

    async def _attempt(
        self,
        frame: EncodedImage,
        position: Position | None,
        generation: int,
    ) -> None:
        try:
            outcome = await asyncio.wait_for(
                self.client.recognize(frame, position),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                "recognition_timeout",
                attempt=generation,
                timeout_seconds=self.timeout_seconds,
            )
            self._emit("scheduler.failed", attempt=generation, error="timeout")
            outcome = NoPlace()
        except Exception as e:
            self.logger.warning("recognition_error", attempt=generation, error=str(e))
            self._emit("scheduler.failed", attempt=generation, error=str(e))
            outcome = NoPlace()

        self._complete(outcome, generation)

    def _complete(self, outcome: RecognitionOutcome, generation: int) -> None:
        state = self._state
        if generation == self._generation:
            state = replace(state, in_flight=False, last_attempt_at=self.clock())
        else:
            # Superseded by reset(); the new cycle owns the flag and timestamps
            self.logger.debug("stale_attempt_completed", attempt=generation)

        if isinstance(outcome, Recognized):
            state = replace(
                state,
                place=outcome.place,
                stories=tuple(outcome.stories),
                reasoning=None,
            )
            self.logger.info(
                "place_locked",
                place=outcome.place.name,
                confidence=outcome.place.confidence,
                stories=len(outcome.stories),
            )
            self._emit(
                "scheduler.place_locked",
                place_id=outcome.place.id,
                name=outcome.place.name,
                confidence=outcome.place.confidence,
            )
        elif outcome.reasoning is not None:
            state = replace(state, reasoning=outcome.reasoning)
            self.logger.info("place_rejected", reasoning=outcome.reasoning)
            self._emit("scheduler.rejected", reasoning=outcome.reasoning)

        self._state = state

    def reset(self) -> None:
        """Clear place, stories, reasoning, in-flight flag and timestamps.

        An outstanding attempt is not cancelled. Its outcome is still merged
        when it completes.
        """
        self._generation += 1
        self._state = SchedulerState()
        self.logger.info("scheduler_reset", outstanding=len(self._tasks))
        self._emit("scheduler.reset")

    async def wait_idle(self) -> None:
        """Wait for all outstanding attempts to complete."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _emit(self, topic: str, **data) -> None:
        if self.event_bus:
            self.event_bus.emit(topic, source="scheduler", **data)

    def get_status(self) -> dict:
        state = self._state
        return {
            "in_flight": state.in_flight,
            "last_attempt_at": state.last_attempt_at,
            "place": state.place.name if state.place else None,
            "stories": len(state.stories),
            "reasoning": state.reasoning,
            "attempts": self.attempts,
        }
