"""CLI commands for arcrunner using Typer and Rich.

Commands:
- generate: Submit one clip to the provider
- poll: Run one polling pass (or keep polling with --watch)
- recover: Reconcile clips stuck in Generating
- status: List clips and their generation state
- archive: Save a clip's result locally and bump its Saved version
- serve: Run the API server
"""

import asyncio
import json
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from arcrunner.config import settings
from arcrunner.db import init_database, shutdown
from arcrunner.errors import ArcRunnerError
from arcrunner.orchestrator.state import StatusKind, parse_status
from arcrunner.pipeline.archive import archive_clip
from arcrunner.runtime import build_services

app = typer.Typer(name="arcrunner", help="Generation dispatch, polling and recovery for the ArcRunner dashboard")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_status_color(status: str) -> str:
    """Get Rich color for a clip status string."""
    kind = parse_status(status).kind
    return {
        StatusKind.GENERATING: "yellow",
        StatusKind.DONE: "green",
        StatusKind.ERROR: "red",
        StatusKind.SAVED: "cyan",
    }.get(kind, "white")


@app.command()
def generate(
    clip_id: str = typer.Argument(..., help="Clip ID"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override the clip/episode model"),
    aspect_ratio: Optional[str] = typer.Option(None, "--aspect-ratio", "-a", help="Override aspect ratio"),
    style_strength: Optional[float] = typer.Option(None, "--style-strength", min=0, max=10, help="Style strength 0-10"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the payload without submitting"),
):
    """Build the provider payload for a clip and submit it."""
    asyncio.run(_generate_async(clip_id, model, aspect_ratio, style_strength, dry_run))


async def _generate_async(
    clip_id: str,
    model: Optional[str],
    aspect_ratio: Optional[str],
    style_strength: Optional[float],
    dry_run: bool,
):
    await init_database()
    services = build_services(settings)
    try:
        result = await services.dispatcher.dispatch(
            clip_id,
            model=model,
            aspect_ratio=aspect_ratio,
            style_strength=style_strength,
            dry_run=dry_run,
        )
    except ArcRunnerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        await services.close()
        await shutdown()

    if dry_run:
        console.print(Panel(json.dumps(result.payload, indent=2), title="[bold]Payload[/bold]", border_style="blue"))
        return
    if not result.ok:
        console.print(f"[red]Submission failed:[/red] {result.error}")
        raise typer.Exit(code=1)
    if result.result_url:
        console.print(f"[green]Done:[/green] {result.result_url}")
    else:
        console.print(f"[yellow]Submitted:[/yellow] task {result.task_id}")


@app.command()
def poll(
    watch: bool = typer.Option(False, "--watch", "-w", help="Keep polling on the configured interval"),
):
    """Check outstanding provider tasks."""
    try:
        asyncio.run(_poll_async(watch))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


async def _poll_async(watch: bool):
    await init_database()
    services = build_services(settings)
    try:
        while True:
            summary = await services.poller.tick()
            console.print(
                f"checked={summary.checked} [green]updated={summary.updated}[/green] "
                f"[yellow]skipped={summary.skipped}[/yellow] "
                f"[red]zombies_corrected={summary.zombies_corrected}[/red]"
            )
            if not watch:
                break
            await asyncio.sleep(services.poller.interval)
    finally:
        await services.close()
        await shutdown()


@app.command()
def recover():
    """Reconcile clips left in Generating by an earlier process."""
    asyncio.run(_recover_async())


async def _recover_async():
    await init_database()
    services = build_services(settings)
    try:
        summary = await services.recovery.recover_all()
    finally:
        await services.close()
        await shutdown()

    info_lines = [
        f"[bold]Scanned:[/bold] {summary.scanned}",
        f"[bold]Updated:[/bold] [green]{summary.updated}[/green]",
        f"[bold]Still running:[/bold] [yellow]{summary.in_flight}[/yellow]",
        f"[bold]Zombies set to Error:[/bold] [red]{summary.zombies}[/red]",
        f"[bold]Check failures:[/bold] {summary.failed}",
    ]
    console.print(Panel("\n".join(info_lines), title="[bold]Recovery[/bold]", border_style="blue"))


@app.command()
def status(
    episode_id: Optional[str] = typer.Option(None, "--episode", "-e", help="Only clips of this episode"),
    status_filter: Optional[str] = typer.Option(None, "--status", "-s", help="Only clips with this status"),
):
    """List clips and their generation state."""
    asyncio.run(_status_async(episode_id, status_filter))


async def _status_async(episode_id: Optional[str], status_filter: Optional[str]):
    await init_database()
    services = build_services(settings)
    try:
        if status_filter is not None:
            clips = await services.store.find_clips_by_status(status_filter)
            if episode_id:
                clips = [c for c in clips if c.episode_id == episode_id]
        else:
            clips = await services.store.list_clips(episode_id)
    finally:
        await services.close()
        await shutdown()

    if not clips:
        console.print("[yellow]No clips found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Scene")
    table.add_column("Title")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Result")

    for clip in clips:
        status_color = _get_status_color(clip.status)
        status_display = f"[{status_color}]{clip.status or 'idle'}[/{status_color}]"
        result = clip.result_url or ""
        if clip.error_message and parse_status(clip.status).kind == StatusKind.ERROR:
            result = f"[red]{clip.error_message[:60]}[/red]"
        elif len(result) > 60:
            result = result[:57] + "..."
        table.add_row(clip.id[:8] + "...", clip.scene, clip.title, clip.model or "", status_display, result)

    console.print(table)


@app.command()
def archive(
    clip_id: str = typer.Argument(..., help="Clip ID"),
):
    """Download a clip's result into local media and mark it Saved."""
    asyncio.run(_archive_async(clip_id))


async def _archive_async(clip_id: str):
    await init_database()
    services = build_services(settings)
    try:
        result = await archive_clip(services.store, services.media, services.kie.download_file, clip_id)
    except ArcRunnerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        await services.close()
        await shutdown()
    console.print(f"[cyan]{result.status}[/cyan] {result.result_url}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Run the API server (recovery at startup, background poller)."""
    import uvicorn

    uvicorn.run(
        "arcrunner.api.app:app",
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_level=settings.server.log_level.lower(),
        reload=False,
    )
