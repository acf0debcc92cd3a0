"""Screen state machine: Booting -> Scanning <-> MapView, Detail overlay."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from locallens.common.events import EventBus
from locallens.common.logging import get_logger
from locallens.models import AppScreen
from locallens.scheduler import RecognitionScheduler

ScreenListener = Callable[[AppScreen, AppScreen], None]


class AppStateMachine:
    """Tracks the active screen and the Detail overlay flag.

    All transitions return True when they changed something and False when
    they were not valid from the current state.
    """

    def __init__(
        self,
        scheduler: RecognitionScheduler | None = None,
        event_bus: EventBus | None = None,
        step_percent: int = 5,
        tick_ms: int = 40,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.scheduler = scheduler
        self.event_bus = event_bus
        self.step_percent = step_percent
        self.tick_ms = tick_ms
        self._sleep = sleep

        self.screen = AppScreen.BOOTING
        self.detail_open = False
        self.selected_story_id: str | None = None
        self.boot_progress = 0
        self._ramping = False
        self._listeners: list[ScreenListener] = []
        self.logger = get_logger("state_machine")

    @property
    def booting(self) -> bool:
        """True while the boot ramp is running."""
        return self._ramping

    @property
    def scanning_allowed(self) -> bool:
        return self.screen == AppScreen.SCANNING

    def add_listener(self, listener: ScreenListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` on every screen change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start(self) -> bool:
        """Run the boot ramp, then enter Scanning.

        Ignored unless Booting and no ramp is already running.
        """
        if self.screen != AppScreen.BOOTING or self._ramping:
            return False

        self._ramping = True
        self.boot_progress = 0
        try:
            while self.boot_progress < 100:
                await self._sleep(self.tick_ms / 1000)
                self.boot_progress = min(100, self.boot_progress + self.step_percent)
        finally:
            self._ramping = False

        self._set_screen(AppScreen.SCANNING)
        return True

    def toggle_map(self) -> bool:
        """Scanning <-> MapView. Entering MapView closes Detail."""
        if self.screen == AppScreen.SCANNING:
            self._close_detail()
            self._set_screen(AppScreen.MAP_VIEW)
            return True
        if self.screen == AppScreen.MAP_VIEW:
            self._set_screen(AppScreen.SCANNING)
            return True
        return False

    def go_home(self) -> bool:
        """Return to Booting and reset the scheduler."""
        if self.screen == AppScreen.BOOTING:
            return False

        self._close_detail()
        self.boot_progress = 0
        if self.scheduler:
            self.scheduler.reset()
        self._set_screen(AppScreen.BOOTING)
        return True

    def open_detail(self, story_id: str | None = None) -> bool:
        """Show the Detail overlay for the held place, optionally at a story."""
        if self.screen != AppScreen.SCANNING:
            return False
        if self.scheduler is None or self.scheduler.state.place is None:
            return False

        self.detail_open = True
        self.selected_story_id = story_id
        self._emit("app.detail_opened", story_id=story_id)
        return True

    def close_detail(self) -> bool:
        if not self.detail_open:
            return False
        self._close_detail()
        return True

    def _close_detail(self) -> None:
        if self.detail_open:
            self.detail_open = False
            self.selected_story_id = None
            self._emit("app.detail_closed")

    def _set_screen(self, screen: AppScreen) -> None:
        previous = self.screen
        self.screen = screen
        self.logger.info("screen_changed", previous=previous.value, current=screen.value)
        self._emit("app.screen_changed", previous=previous.value, current=screen.value)

        for listener in list(self._listeners):
            try:
                listener(previous, screen)
            except Exception as e:
                self.logger.error("screen_listener_error", error=str(e))

    def _emit(self, topic: str, **data) -> None:
        if self.event_bus:
            self.event_bus.emit(topic, source="app", **data)
