"""Location sources and the tracker that owns the active subscription."""

from __future__ import annotations

import asyncio
import math
import random
from typing import Any

from locallens.common.events import EventBus
from locallens.common.logging import get_logger
from locallens.config import Config
from locallens.models import Position

_METERS_PER_DEG_LAT = 111_320.0


class LocationSource:
    """Abstract position provider.

    ``next_position`` waits for the provider's next sample and may raise
    when a delivery fails; the tracker logs such failures and keeps going.
    """

    async def setup(self) -> None:
        pass

    async def teardown(self) -> None:
        pass

    async def next_position(self) -> Position:
        raise NotImplementedError


class StaticLocationSource(LocationSource):
    """Reports a fixed position at a fixed interval."""

    def __init__(self, latitude: float, longitude: float, interval_seconds: float = 1.0) -> None:
        self.position = Position(latitude=latitude, longitude=longitude, accuracy_m=0.0)
        self.interval_seconds = interval_seconds

    async def next_position(self) -> Position:
        await asyncio.sleep(self.interval_seconds)
        return Position(
            latitude=self.position.latitude,
            longitude=self.position.longitude,
            accuracy_m=0.0,
        )


class MockLocationSource(LocationSource):
    """Random walk around a starting point."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        interval_seconds: float = 1.0,
        jitter_m: float = 5.0,
        seed: int | None = None,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.interval_seconds = interval_seconds
        self.jitter_m = jitter_m
        self._rng = random.Random(seed)

    async def next_position(self) -> Position:
        await asyncio.sleep(self.interval_seconds)
        d_north = self._rng.uniform(-self.jitter_m, self.jitter_m)
        d_east = self._rng.uniform(-self.jitter_m, self.jitter_m)
        self.latitude += d_north / _METERS_PER_DEG_LAT
        self.longitude += d_east / (_METERS_PER_DEG_LAT * math.cos(math.radians(self.latitude)))
        return Position(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_m=self.jitter_m,
        )


class LocationTracker:
    """Single active subscriber of a location source.

    Entering the tracker starts delivery, leaving it stops delivery and
    releases the source. The most recent sample is kept in ``latest``.
    """

    def __init__(
        self,
        source: LocationSource,
        event_bus: EventBus | None = None,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self.source = source
        self.event_bus = event_bus
        self.retry_delay_seconds = retry_delay_seconds
        self.latest: Position | None = None
        self.failures = 0
        self._task: asyncio.Task | None = None
        self.logger = get_logger("location_tracker")

    @property
    def active(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        await self.source.setup()
        self._task = asyncio.create_task(self._run())
        self.logger.info("location_tracking_started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        await self.source.teardown()
        self.logger.info("location_tracking_stopped")

    async def _run(self) -> None:
        while True:
            try:
                position = await self.source.next_position()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                self.logger.warning("location_delivery_failed", error=str(e))
                await asyncio.sleep(self.retry_delay_seconds)
                continue

            self.latest = position
            if self.event_bus:
                self.event_bus.emit(
                    "location.updated",
                    source="location",
                    latitude=position.latitude,
                    longitude=position.longitude,
                )

    async def __aenter__(self) -> LocationTracker:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()


def create_location_source(config: Config) -> LocationSource:
    """Build the location source selected by configuration."""
    loc = config.location
    if loc.source == "static":
        return StaticLocationSource(loc.latitude, loc.longitude, loc.interval_seconds)
    return MockLocationSource(
        loc.latitude,
        loc.longitude,
        interval_seconds=loc.interval_seconds,
        jitter_m=loc.jitter_m,
    )
