"""LocalLens CLI - lensctl command line tool."""

from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from PIL import Image
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from locallens import __version__
from locallens.app import LensApp
from locallens.common.logging import setup_logging
from locallens.config import Config, load_config
from locallens.errors import LocalLensError
from locallens.hud import render_hud
from locallens.models import NoPlace, PlaceInfo, Recognized
from locallens.narration import NarrationController, create_player
from locallens.radar import Radar, project
from locallens.remote.factory import create_service
from locallens.sources.camera import encode_jpeg

app = typer.Typer(
    name="lensctl",
    help="LocalLens AR landmark lens",
    no_args_is_help=True,
)
console = Console()


def get_config(mock: bool = False, config_path: Optional[Path] = None) -> Config:
    """Get configuration."""
    cfg = load_config(config_path)
    if mock:
        cfg.mock_mode = True
    setup_logging(level="WARNING")
    return cfg


@app.command()
def run(
    mock: bool = typer.Option(False, "--mock", help="Use the scripted mock service"),
    images: Optional[Path] = typer.Option(None, "--images", help="Replay frames from a folder"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after N seconds"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
):
    """Run the lens with a live HUD."""
    cfg = get_config(mock, config_path)
    if images:
        cfg.camera.source = "images"
        cfg.camera.image_dir = str(images)
    # Keep log lines from tearing the live display
    cfg.device.log_level = "WARNING"

    async def _run():
        try:
            lens = LensApp(cfg)
        except LocalLensError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)

        async with lens:
            with Live(render_hud(lens.view()), console=console, refresh_per_second=10) as live:
                boot = asyncio.create_task(lens.begin())
                deadline = time.monotonic() + duration if duration else None
                try:
                    while deadline is None or time.monotonic() < deadline:
                        live.update(render_hud(lens.view()))
                        await asyncio.sleep(0.1)
                finally:
                    await boot

        status = lens.scheduler.get_status()
        console.print(
            f"[dim]{status['attempts']} attempt(s), "
            f"lock: {status['place'] or 'none'}[/]"
        )

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


@app.command()
def recognize(
    image: Path,
    mock: bool = typer.Option(False, "--mock"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Recognize the landmark in an image file."""
    cfg = get_config(mock)

    async def _recognize():
        try:
            service = create_service(cfg)
        except LocalLensError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)

        with Image.open(image) as img:
            frame = encode_jpeg(img, cfg.camera.quality)

        outcome = await service.recognize(frame)
        await service.close()

        if json_output:
            if isinstance(outcome, Recognized):
                data = {
                    "place": outcome.place.__dict__,
                    "stories": [
                        {**s.__dict__, "kind": s.kind.value} for s in outcome.stories
                    ],
                }
            else:
                data = {"place": None, "reasoning": outcome.reasoning}
            print(json.dumps(data, indent=2, default=str))
            return

        if isinstance(outcome, NoPlace):
            console.print(f"[yellow]No place[/] {outcome.reasoning or ''}")
            return

        place = outcome.place
        console.print(
            Panel(
                f"{place.description}\n\n★ {place.rating}  "
                f"confidence {place.confidence:.0%}",
                title=f"{place.name} ({place.category})",
            )
        )
        for story in outcome.stories:
            console.print(f"  [cyan][{story.kind.value}][/] {story.title}: {story.content}")

    asyncio.run(_recognize())


@app.command()
def ask(
    place: str,
    question: str,
    mock: bool = typer.Option(False, "--mock"),
):
    """Ask a question about a place."""
    cfg = get_config(mock)

    async def _ask():
        try:
            service = create_service(cfg)
        except LocalLensError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)

        try:
            answer = await service.ask(question, place)
        except Exception as e:
            answer = cfg.inquiry.fallback_message
            console.print(f"[dim]{e}[/]")
        finally:
            await service.close()

        console.print(answer)

    asyncio.run(_ask())


@app.command()
def narrate(
    text: str,
    mock: bool = typer.Option(False, "--mock"),
):
    """Speak text through the narration voice."""
    cfg = get_config(mock)

    async def _narrate():
        try:
            service = create_service(cfg)
        except LocalLensError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(1)

        controller = NarrationController(
            service,
            create_player(cfg),
            sample_rate=cfg.narration.sample_rate,
            channels=cfg.narration.channels,
        )
        place = PlaceInfo(
            id="cli",
            name="narration",
            category="",
            description=text,
            rating=0.0,
            confidence=1.0,
        )
        played = await controller.narrate(place)
        await service.close()

        if played:
            console.print("[green]Done[/]")
        else:
            console.print("[red]No audio[/]")
            sys.exit(1)

    asyncio.run(_narrate())


@app.command()
def radar():
    """Show nearby points of interest."""
    cfg = get_config()

    async def _radar():
        nodes = await Radar(cfg.radar.nodes, discovery_delay_ms=0).discover()

        table = Table(title="Nearby Data Nodes")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Category")
        table.add_column("Distance", justify="right")
        table.add_column("Bearing", justify="right")
        table.add_column("Offset", justify="right")

        for node in nodes:
            x, y = project(node)
            table.add_row(
                node.id,
                node.name,
                node.category,
                node.distance_label,
                f"{node.bearing_deg:.0f}°",
                f"({x:.0f}, {y:.0f})",
            )

        console.print(table)

    asyncio.run(_radar())


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]LocalLens[/] v{__version__}")


# Config command
@app.command()
def config(json_output: bool = typer.Option(False, "--json")):
    """Show configuration."""
    cfg = get_config()

    if json_output:
        data = cfg.model_dump()
        if data["remote"]["api_key"]:
            data["remote"]["api_key"] = "***"
        print(json.dumps(data, indent=2, default=str))
    else:
        console.print("[bold]Configuration[/]")
        console.print(f"  Device: {cfg.device.name}")
        console.print(f"  Mode: {cfg.device.mode}")
        console.print(f"  Mock Mode: {cfg.mock_mode}")
        console.print(f"\n[bold]Remote[/]")
        console.print(f"  Provider: {cfg.remote.provider}")
        console.print(f"  API Key: {'set' if cfg.remote.api_key else 'missing'}")
        console.print(f"  Threshold: {cfg.remote.acceptance_threshold}")
        console.print(f"\n[bold]Scheduler[/]")
        console.print(f"  Tick: {cfg.scheduler.tick_interval_ms}ms")
        console.print(f"  Dwell: {cfg.scheduler.dwell_interval_ms}ms")
        console.print(f"  Timeout: {cfg.scheduler.attempt_timeout_seconds}s")
        console.print(f"\n[bold]Sources[/]")
        console.print(f"  Camera: {cfg.camera.source}")
        console.print(f"  Location: {cfg.location.source}")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
