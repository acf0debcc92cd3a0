"""LensApp - composes the sources, remote service, scheduler and screens."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from locallens.common.events import Event, EventBus
from locallens.common.ids import IdGenerator
from locallens.common.logging import get_logger, setup_logging
from locallens.config import Config, load_config
from locallens.hud import HudView, build_hud
from locallens.inquiry import InquiryController
from locallens.models import AppScreen, ChatTurn
from locallens.narration import AudioPlayer, NarrationController, create_player
from locallens.radar import Radar
from locallens.remote.base import RemoteService
from locallens.remote.factory import create_service
from locallens.scheduler import RecognitionScheduler, monotonic_ms
from locallens.state_machine import AppStateMachine
from locallens.sources.camera import FrameSource, create_frame_source
from locallens.sources.location import LocationSource, LocationTracker, create_location_source

ACTIVE_SCREENS = (AppScreen.SCANNING, AppScreen.MAP_VIEW)


class LensApp:
    """The running lens.

    Example:
        async with LensApp(config) as lens:
            await lens.begin()
            ...
            print(lens.view().status_label)

    A single tick driver calls ``scheduler.tick`` every
    ``scheduler.tick_interval_ms``. Camera and location are acquired when
    the lens enters Scanning or MapView and released on return to Booting
    or on stop.
    """

    def __init__(
        self,
        config: Config | None = None,
        service: RemoteService | None = None,
        frame_source: FrameSource | None = None,
        location_source: LocationSource | None = None,
        player: AudioPlayer | None = None,
        clock: Callable[[], int] = monotonic_ms,
        ids: IdGenerator | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or load_config()

        setup_logging(
            level=self.config.device.log_level,
            json_output=self.config.device.mode == "production",
            service_name=self.config.device.name,
        )
        self.logger = get_logger("lens_app")

        self.clock = clock
        self.event_bus = event_bus or EventBus()
        self.service = service or create_service(self.config, ids)
        self.frame_source = frame_source or create_frame_source(self.config)
        self.location = LocationTracker(
            location_source or create_location_source(self.config),
            event_bus=self.event_bus,
        )

        sched = self.config.scheduler
        self.scheduler = RecognitionScheduler(
            self.frame_source,
            self.service,
            location=self.location,
            clock=clock,
            gate=lambda: self.machine.scanning_allowed,
            event_bus=self.event_bus,
            dwell_ms=sched.dwell_interval_ms,
            timeout_seconds=sched.attempt_timeout_seconds,
        )
        self.machine = AppStateMachine(
            self.scheduler,
            event_bus=self.event_bus,
            step_percent=self.config.boot.step_percent,
            tick_ms=self.config.boot.tick_ms,
        )
        self.machine.add_listener(self._on_screen_changed)

        self.narration = NarrationController(
            self.service,
            player or create_player(self.config),
            event_bus=self.event_bus,
            sample_rate=self.config.narration.sample_rate,
            channels=self.config.narration.channels,
        )
        self.inquiry = InquiryController(
            self.service,
            event_bus=self.event_bus,
            fallback_message=self.config.inquiry.fallback_message,
        )
        self.radar = Radar(
            self.config.radar.nodes,
            discovery_delay_ms=self.config.radar.discovery_delay_ms,
        )
        self._chat_place: str | None = None
        self.event_bus.subscribe("scheduler.place_locked", self._on_place_locked)

        self._devices_active = False
        self._devices_lock = asyncio.Lock()
        self._driver: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._started = False

    async def start(self) -> None:
        """Start the tick driver. The lens stays on Booting until ``begin``."""
        if self._started:
            return

        self.logger.info(
            "lens_starting",
            provider=self.service.provider_id,
            camera=self.config.camera.source,
            location=self.config.location.source,
        )
        self._driver = asyncio.create_task(self._tick_loop())
        self._started = True
        self.logger.info("lens_started")

    async def stop(self) -> None:
        """Stop ticking, wait for outstanding work and release devices."""
        if not self._started:
            return

        self.logger.info("lens_stopping")
        if self._driver:
            self._driver.cancel()
            try:
                await self._driver
            except asyncio.CancelledError:
                pass
            self._driver = None

        self.radar.clear()
        await self.scheduler.wait_idle()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.narration.stop()
        await self._release_devices()
        await self.service.close()
        await self.event_bus.drain()

        self._started = False
        self.logger.info("lens_stopped")

    async def __aenter__(self) -> LensApp:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    # User actions

    async def begin(self) -> bool:
        """Run the boot ramp and enter Scanning."""
        started = await self.machine.start()
        if started:
            await self.sync_devices()
        return started

    def toggle_map(self) -> bool:
        was_open = self.machine.detail_open
        if not self.machine.toggle_map():
            return False
        if was_open:
            self._clear_chat()
        return True

    def go_home(self) -> bool:
        if not self.machine.go_home():
            return False
        self._clear_chat()
        return True

    def open_detail(self, story_id: str | None = None) -> bool:
        return self.machine.open_detail(story_id)

    def close_detail(self) -> bool:
        if not self.machine.close_detail():
            return False
        self._clear_chat()
        return True

    def narrate(self) -> asyncio.Task | None:
        """Narrate the held place in the background."""
        place = self.scheduler.state.place
        if place is None or self.narration.is_narrating:
            return None
        return self._spawn(self.narration.narrate(place))

    async def ask(self, question: str) -> ChatTurn | None:
        """Ask about the held place. Ignored when no place is held."""
        place = self.scheduler.state.place
        if place is None:
            return None
        self._chat_place = place.name
        return await self.inquiry.ask(question, place.name)

    def view(self) -> HudView:
        return build_hud(
            self.machine.screen,
            self.scheduler.state,
            detail_open=self.machine.detail_open,
            boot_progress=self.machine.boot_progress,
            position=self.location.latest,
            radar_nodes=self.radar.nodes,
            radar_loading=self.radar.loading,
            narrating=self.narration.is_narrating,
            chat=self.inquiry.log,
        )

    # Internals

    async def _tick_loop(self) -> None:
        interval = self.config.scheduler.tick_interval_ms / 1000
        while True:
            try:
                self.scheduler.tick(self.clock())
            except Exception as e:
                self.logger.error("tick_error", error=str(e))
            await asyncio.sleep(interval)

    def _on_screen_changed(self, previous: AppScreen, current: AppScreen) -> None:
        if current == AppScreen.MAP_VIEW:
            self.radar.start(self.location.latest)
        elif previous == AppScreen.MAP_VIEW:
            self.radar.clear()

        if current == AppScreen.BOOTING:
            self._spawn(self.sync_devices())

    async def _on_place_locked(self, event: Event) -> None:
        # The chat belongs to the place it was asked about
        if self._chat_place is not None and event.data.get("name") != self._chat_place:
            self._clear_chat()

    def _clear_chat(self) -> None:
        self.inquiry.clear()
        self._chat_place = None

    async def sync_devices(self) -> None:
        """Acquire or release devices to match the current screen."""
        if self.machine.screen in ACTIVE_SCREENS:
            await self._acquire_devices()
        else:
            await self._release_devices()

    async def _acquire_devices(self) -> None:
        async with self._devices_lock:
            if self._devices_active:
                return
            try:
                await self.frame_source.setup()
            except Exception as e:
                # Ticks stay no-ops without a frame
                self.logger.error("camera_unavailable", error=str(e))
            try:
                await self.location.start()
            except Exception as e:
                self.logger.error("location_unavailable", error=str(e))
            self._devices_active = True
            self.event_bus.emit("devices.acquired", source="app")

    async def _release_devices(self) -> None:
        async with self._devices_lock:
            if not self._devices_active:
                return
            await self.location.stop()
            await self.frame_source.teardown()
            self._devices_active = False
            self.event_bus.emit("devices.released", source="app")

    @property
    def devices_active(self) -> bool:
        return self._devices_active

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def get_status(self) -> dict:
        return {
            "screen": self.machine.screen.value,
            "detail_open": self.machine.detail_open,
            "devices_active": self._devices_active,
            "scheduler": self.scheduler.get_status(),
            "remote": self.service.get_status(),
            "camera": self.frame_source.get_status(),
        }
