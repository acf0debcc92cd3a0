"""Heads-up display: what to show for a given app and scheduler state.

``build_hud`` holds the display rules and is pure. ``render_hud`` turns its
result into a rich renderable for the terminal.
"""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Group
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from locallens.models import AppScreen, ChatTurn, MapNode, PlaceInfo, Position, Story
from locallens.radar import project
from locallens.scheduler import SchedulerState

MAX_STORY_CARDS = 4


@dataclass(frozen=True)
class HudView:
    screen: AppScreen
    boot_progress: int = 0
    status_label: str = ""
    footer_label: str = ""
    scanning_indicator: bool = False
    lock_label: str | None = None
    place: PlaceInfo | None = None
    rejection_banner: str | None = None
    stories: tuple[Story, ...] = ()
    coordinates: str | None = None
    radar_nodes: tuple[MapNode, ...] = ()
    radar_loading: bool = False
    detail_open: bool = False
    narrating: bool = False
    chat: tuple[ChatTurn, ...] = ()


def status_label(screen: AppScreen, in_flight: bool) -> str:
    if screen == AppScreen.MAP_VIEW:
        return "SPATIAL GRID ACTIVE"
    return "AI SCANNING..." if in_flight else "HUD ACTIVE"


def footer_label(screen: AppScreen, in_flight: bool) -> str:
    if in_flight:
        return "Validating Visuals"
    return "Triangulating" if screen == AppScreen.MAP_VIEW else "Optical Lock"


def lock_label(place: PlaceInfo) -> str:
    return f"LOCK ESTABLISHED ({place.confidence * 100:.0f}%)"


def format_coordinates(position: Position | None) -> str | None:
    if position is None:
        return None
    return f"LAT {position.latitude:.4f} LNG {position.longitude:.4f}"


def build_hud(
    screen: AppScreen,
    state: SchedulerState,
    detail_open: bool = False,
    boot_progress: int = 0,
    position: Position | None = None,
    radar_nodes: tuple[MapNode, ...] | list[MapNode] = (),
    radar_loading: bool = False,
    narrating: bool = False,
    chat: tuple[ChatTurn, ...] | list[ChatTurn] = (),
) -> HudView:
    """Apply the display rules.

    The scanning indicator shows whenever an attempt is in flight. The
    rejection banner shows only with no held place, nothing in flight and a
    stored reasoning, so an established lock suppresses it.
    """
    if screen == AppScreen.BOOTING:
        return HudView(screen=screen, boot_progress=boot_progress)

    in_flight = state.in_flight
    place = state.place
    show_place = place is not None and screen != AppScreen.MAP_VIEW

    banner = None
    if place is None and not in_flight and state.reasoning:
        banner = state.reasoning

    return HudView(
        screen=screen,
        boot_progress=100,
        status_label=status_label(screen, in_flight),
        footer_label=footer_label(screen, in_flight),
        scanning_indicator=in_flight,
        lock_label=lock_label(place) if show_place else None,
        place=place if show_place else None,
        rejection_banner=banner,
        stories=state.stories[:MAX_STORY_CARDS] if screen == AppScreen.SCANNING else (),
        coordinates=format_coordinates(position),
        radar_nodes=tuple(radar_nodes) if screen == AppScreen.MAP_VIEW else (),
        radar_loading=radar_loading and screen == AppScreen.MAP_VIEW,
        detail_open=detail_open and show_place,
        narrating=narrating,
        chat=tuple(chat),
    )


def _render_boot(view: HudView) -> Panel:
    bar = ProgressBar(total=100, completed=view.boot_progress, width=40)
    return Panel(
        Group(Text("Initialize Feed", style="bold"), bar, Text(f"{view.boot_progress}%")),
        title="LocalLens",
        border_style="blue",
    )


def _render_radar(view: HudView) -> Table:
    table = Table(title="Spatial Recon", expand=False)
    table.add_column("Node", style="cyan")
    table.add_column("Category")
    table.add_column("Distance", justify="right")
    table.add_column("Bearing", justify="right")
    table.add_column("Offset", justify="right")

    for node in view.radar_nodes:
        x, y = project(node)
        table.add_row(
            node.name,
            node.category,
            node.distance_label,
            f"{node.bearing_deg:.0f}°",
            f"({x:.0f}, {y:.0f})",
        )
    return table


def _render_detail(view: HudView) -> Panel:
    place = view.place
    lines = [Text(place.description)]
    meta = f"★ {place.rating}"
    if place.year_built:
        meta += f"   Built in {place.year_built}"
    lines.append(Text(meta, style="yellow"))
    if view.narrating:
        lines.append(Text("♪ Narrating...", style="magenta"))
    for turn in view.chat:
        style = "bold" if turn.role == "user" else "green"
        lines.append(Text(f"{turn.role.upper()}: {turn.text}", style=style))
    return Panel(Group(*lines), title=f"{place.category} / {place.name}", border_style="blue")


def render_hud(view: HudView) -> Group:
    """Render a HUD view for a rich console or Live display."""
    if view.screen == AppScreen.BOOTING:
        return Group(_render_boot(view))

    color = "blue" if view.scanning_indicator else "green"
    parts: list = [Text(f"● {view.status_label}", style=f"bold {color}")]

    if view.lock_label and view.place:
        parts.append(
            Panel(
                Text(view.place.name, style="bold white"),
                title=view.lock_label,
                border_style="blue",
            )
        )
    elif view.scanning_indicator:
        parts.append(Text("Scanning Architecture...", style="blue"))
    elif view.rejection_banner:
        parts.append(Text(f"! {view.rejection_banner}", style="dim"))

    for story in view.stories:
        parts.append(Text(f"[{story.kind.value}] {story.title}", style="cyan"))

    if view.screen == AppScreen.MAP_VIEW:
        if view.radar_loading:
            parts.append(Text("Scanning Local Grid...", style="blue"))
        else:
            parts.append(_render_radar(view))

    if view.detail_open and view.place:
        parts.append(_render_detail(view))

    footer = f"Status: {view.footer_label}"
    if view.coordinates:
        footer += f"   {view.coordinates}"
    parts.append(Text(footer, style="dim"))
    return Group(*parts)
