"""CLI runner for the manga recap pipeline.

Usage:
    python -m recap run chapter.pdf
    python -m recap plan chapter.pdf
    python -m recap subtitles chapter.pdf -o chapter.srt
    python -m recap serve --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import tempfile
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

console = Console()

_DEFAULT_CONFIG = "config.yaml"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


class _RichSink:
    """Mirrors progress records onto a rich progress bar."""

    def __init__(self, progress: Progress, task_id) -> None:
        self.progress = progress
        self.task_id = task_id
        self.records: list[dict] = []

    def send(self, record: dict) -> None:
        self.records.append(record)
        if "status" in record:
            self.progress.update(
                self.task_id,
                completed=record.get("progress", 0),
                description=record["status"],
            )


def _load(ctx: click.Context) -> tuple[dict, str]:
    from recap.config import load_config

    config_path = ctx.obj["config"]
    try:
        return load_config(config_path), config_path
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)


def _plan_document(config: dict, pdf: Path, workdir: Path):
    """Rasterize and narrate ``pdf`` without synthesizing audio."""
    from recap.config import build_planner
    from recap.pages import PageStore, PdfRasterizer
    from recap.timeline import build_timeline

    rasterizer_config = config.get("rasterizer") or {}
    rasterizer = PdfRasterizer(
        dpi=rasterizer_config.get("dpi", 150),
        timeout=rasterizer_config.get("timeout", 300.0),
    )
    store = PageStore(rasterizer.rasterize(pdf, workdir))
    segments = build_planner(config).plan(store.get_pages())
    return segments, build_timeline(segments)


@click.group()
@click.option("--config", "-c", default=_DEFAULT_CONFIG, help="Path to config.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """recap: narrated recap videos from manga PDFs."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    _setup_logging(verbose)


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------

@cli.command("run")
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def cmd_run(ctx: click.Context, pdf: Path) -> None:
    """Produce a recap video for PDF."""
    from recap.config import build_coordinator, get_uploads_dir
    from recap.coordinator import new_run_id
    from recap.models import RunState

    config, config_path = _load(ctx)
    try:
        coordinator = build_coordinator(config, config_path)
    except ValueError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        sys.exit(1)

    # The pipeline removes its input on success; work on a copy.
    uploads_dir = get_uploads_dir(config, config_path)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    run_id = new_run_id()
    source = uploads_dir / f"{run_id}_{pdf.name}"
    shutil.copyfile(pdf, source)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("Uploaded", total=100)
        sink = _RichSink(progress, task_id)
        try:
            run = asyncio.run(coordinator.run(source, sink, run_id=run_id))
        except KeyboardInterrupt:
            console.print(f"\n[yellow]Interrupted. Input kept at {source}[/yellow]")
            sys.exit(130)

    if run.state is RunState.COMPLETE:
        console.print(f"[green]Done -> {run.video_path}[/green]")
        return

    console.print(f"[red]{run.state.value} ({run.error_kind}): {run.error_message}[/red]")
    console.print(f"[dim]Input kept at {source}[/dim]")
    sys.exit(130 if run.state is RunState.CANCELLED else 1)


# ------------------------------------------------------------------
# plan
# ------------------------------------------------------------------

@cli.command("plan")
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def cmd_plan(ctx: click.Context, pdf: Path) -> None:
    """Show the narration and estimated timeline for PDF."""
    from recap.errors import PipelineError
    from recap.subtitles import format_timestamp

    config, _ = _load(ctx)
    tmpdir = tempfile.mkdtemp(prefix="recap_plan_")
    try:
        segments, timeline = _plan_document(config, pdf, Path(tmpdir))
    except (PipelineError, ValueError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)

    table = Table(title=f"[{pdf.name}]", show_lines=True)
    table.add_column("Page", style="cyan", justify="center")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Narration")

    for entry in timeline.entries:
        table.add_row(
            str(entry.page_number),
            format_timestamp(entry.start),
            format_timestamp(entry.end),
            entry.text,
        )

    console.print(table)
    console.print(f"[bold]{len(segments)} page(s), {timeline.total_duration:.1f}s estimated[/bold]")


# ------------------------------------------------------------------
# subtitles
# ------------------------------------------------------------------

@cli.command("subtitles")
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Where to write the .srt (defaults next to the PDF)")
@click.pass_context
def cmd_subtitles(ctx: click.Context, pdf: Path, output: Path | None) -> None:
    """Write an SRT track from estimated narration timing."""
    from recap.errors import PipelineError
    from recap.subtitles import write_srt

    config, _ = _load(ctx)
    output = output or pdf.with_suffix(".srt")
    max_chars = (config.get("assembly") or {}).get("max_chars_per_line", 42)

    tmpdir = tempfile.mkdtemp(prefix="recap_srt_")
    try:
        _, timeline = _plan_document(config, pdf, Path(tmpdir))
        write_srt(timeline.entries, output, max_chars)
    except (PipelineError, ValueError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)

    console.print(f"[green]{len(timeline.entries)} cue(s) -> {output}[/green]")


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------

@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_context
def cmd_serve(ctx: click.Context, host: str, port: int) -> None:
    """Serve the upload endpoint over HTTP."""
    import uvicorn

    from recap.server import create_app

    config, config_path = _load(ctx)
    try:
        app = create_app(config, config_path)
    except ValueError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        sys.exit(1)

    console.print(f"[bold]Serving on http://{host}:{port}[/bold]")
    uvicorn.run(app, host=host, port=port)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
