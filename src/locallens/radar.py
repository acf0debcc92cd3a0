"""Schematic radar of nearby points of interest shown in MapView.

The radar is not pose-tracked: nodes are placed by distance and compass
bearing around the wearer.
"""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, Sequence

from locallens.common.logging import get_logger
from locallens.config import RadarNode
from locallens.models import MapNode, Position

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial compass bearing from the first point to the second, 0-360."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)
    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def project(node: MapNode) -> tuple[float, float]:
    """Screen offset of a node from the wearer marker.

    Distance is compressed so the whole neighborhood fits the radar:
    ``radius = 100 + distance_m / 10``.
    """
    radius = 100 + node.distance_m / 10
    theta = math.radians(node.bearing_deg)
    return math.cos(theta) * radius, math.sin(theta) * radius


def resolve_nodes(
    catalog: Sequence[RadarNode],
    position: Position | None = None,
) -> list[MapNode]:
    """Turn catalog entries into map nodes.

    Entries with coordinates are measured from ``position`` when it is known;
    otherwise their fixed distance and bearing are used. Entries with
    neither are skipped.
    """
    nodes = []
    for entry in catalog:
        if position is not None and entry.latitude is not None and entry.longitude is not None:
            distance = haversine_m(
                position.latitude, position.longitude, entry.latitude, entry.longitude
            )
            bearing = initial_bearing_deg(
                position.latitude, position.longitude, entry.latitude, entry.longitude
            )
        elif entry.distance_m is not None and entry.bearing_deg is not None:
            distance, bearing = entry.distance_m, entry.bearing_deg
        else:
            continue

        nodes.append(
            MapNode(
                id=str(len(nodes) + 1),
                name=entry.name,
                distance_m=distance,
                bearing_deg=bearing,
                category=entry.category,
            )
        )
    return nodes


class Radar:
    """Discovers nearby nodes after a short scan delay."""

    def __init__(
        self,
        catalog: Sequence[RadarNode],
        discovery_delay_ms: int = 800,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.catalog = list(catalog)
        self.discovery_delay_ms = discovery_delay_ms
        self._sleep = sleep
        self.nodes: list[MapNode] = []
        self.loading = False
        # Bumped per scan and by clear(); only the latest scan updates state
        self._generation = 0
        self._task: asyncio.Task | None = None
        self.logger = get_logger("radar")

    def start(self, position: Position | None = None) -> asyncio.Task:
        """Run ``discover`` in the background, replacing any scan in progress."""
        self._cancel()
        self._task = asyncio.create_task(self.discover(position))
        return self._task

    async def discover(self, position: Position | None = None) -> list[MapNode]:
        self._generation += 1
        generation = self._generation
        self.loading = True
        self.nodes = []
        await self._sleep(self.discovery_delay_ms / 1000)
        if generation != self._generation:
            self.logger.debug("radar_scan_superseded")
            return []

        self.nodes = resolve_nodes(self.catalog, position)
        self.loading = False
        self.logger.debug("radar_nodes_discovered", count=len(self.nodes))
        return self.nodes

    def clear(self) -> None:
        """Cancel any scan in progress and drop the nodes."""
        self._cancel()
        self._generation += 1
        self.nodes = []
        self.loading = False

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
