"""
subline.cli - Typer CLI entry point.

Provides the generate command plus helpers for inspecting and writing
configuration. Results go to stdout as JSON; failures are reported as a
single [ERROR] line on stderr.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from subline import __version__
from subline.config import CONFIG_FILENAME, SublineConfig, load_api_key, load_config, write_config
from subline.exceptions import ConfigError
from subline.extract.downloader import create_extractor_from_config
from subline.logging import configure_logging
from subline.pipeline import Failure, PipelineOutcome, run_pipeline
from subline.transcribe.client import create_transcriber

app = typer.Typer(
    name="subline",
    help="Generate time-aligned subtitle tokens.\n\n"
    "Downloads audio from a YouTube URL (or takes a local audio file), "
    "transcribes it with Whisper, and prints validated tokens as JSON.",
    add_completion=False,
)
console = Console()

USAGE = "Usage: subline generate --url <youtube-url> | --file <audio-file>"


def one_line(text: str) -> str:
    """Collapse multi-line diagnostics into a single line."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return " | ".join(lines)


def fail(reason: str) -> NoReturn:
    typer.echo(f"[ERROR] {one_line(reason)}", err=True)
    raise typer.Exit(1)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"subline {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Subline - resilient subtitle token generation."""
    pass


@app.command("generate")
def generate_cmd(
    url: str | None = typer.Option(None, "--url", "-u", help="YouTube video URL"),
    file: str | None = typer.Option(None, "--file", "-f", help="Local audio file"),
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help=f"Config file (default: ./{CONFIG_FILENAME} if present)"
    ),
    keep_audio: bool = typer.Option(
        True, "--keep-audio/--no-keep-audio", help="Keep audio downloaded in URL mode"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
) -> None:
    """Transcribe a URL or audio file into subtitle tokens.

    Exactly one of --url or --file is required.
    """
    configure_logging(verbose)

    if (url is None) == (file is None):
        typer.echo(USAGE, err=True)
        raise typer.Exit(1)

    try:
        config = load_config(config_file)
        api_key = load_api_key()
    except ConfigError as e:
        fail(str(e))

    raw_args = {"url": url} if url is not None else {"file": file}

    async def run() -> PipelineOutcome:
        async with create_transcriber(config, api_key) as transcriber:
            return await run_pipeline(
                raw_args,
                extractor=create_extractor_from_config(config),
                transcriber=transcriber,
                keep_audio=keep_audio,
            )

    outcome = asyncio.run(run())

    if isinstance(outcome, Failure):
        fail(outcome.reason)

    typer.echo(json.dumps(outcome.result.to_json_list(), indent=2, ensure_ascii=False))


@app.command("strategies")
def strategies_cmd(
    config_file: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show the extraction strategy chain in the order it is tried."""
    try:
        config = load_config(config_file)
    except ConfigError as e:
        fail(str(e))

    strategies = config.downloader.strategies
    if not strategies:
        console.print("[yellow]No extraction strategies configured.[/yellow]")
        return

    table = Table(title=f"Extraction Strategies ({config.downloader.binary})")
    table.add_column("#", style="dim")
    table.add_column("Strategy", style="cyan")
    table.add_column("Arguments", style="green")

    for index, strategy in enumerate(strategies, start=1):
        table.add_row(str(index), strategy.name, " ".join(strategy.args) or "-")

    console.print(table)


@app.command("init-config")
def init_config_cmd(
    path: Path = typer.Argument(Path(CONFIG_FILENAME), help="Where to write the config"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a config file populated with the defaults."""
    if path.exists() and not force:
        console.print(f"[red]Error: '{path}' already exists (use --force to overwrite)[/red]")
        raise typer.Exit(1)

    defaults = SublineConfig().model_dump(mode="json", exclude={"config_path"})
    write_config(defaults, path)
    console.print(f"[green]✓[/green] Wrote default config to {path}")
