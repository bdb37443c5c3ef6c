"""Typer-based CLI for ContentSync with Pydantic v2 configuration."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from CmsToIndex.ContentSync.config import (
    ContentSyncConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)
from CmsToIndex.ContentSync.config.loader import CONFIG_PATH_ENVVAR
from CmsToIndex.ContentSync.fetch import RepositoryFetcher, ResponseCache, set_fetcher
from CmsToIndex.ContentSync.http_session import build_http_client
from CmsToIndex.ContentSync.logging_config import setup_logging
from CmsToIndex.ContentSync.node import IndexEvent
from CmsToIndex.ContentSync.service import ContentSyncService
from CmsToIndex.ContentSync.session import PathAttribute, PathList
from CmsToIndex.ContentSync.sinks import (
    InMemoryJobSink,
    JobSink,
    JsonlJobSink,
    RecordingJobSink,
)
from CmsToIndex.ContentSync.state import SqliteIndexStateStore

LOGGER = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="CmsToIndex ContentSync")

CONFIG_ENVVAR = CONFIG_PATH_ENVVAR


# ============================================================================
# Setup
# ============================================================================


def _load(config: Optional[str], verbose: bool) -> ContentSyncConfig:
    overrides = {"logging": {"level": "DEBUG"}} if verbose else None
    cfg = load_config(path=config, cli_overrides=overrides)
    setup_logging(cfg.logging)
    return cfg


def _build_service(
    cfg: ContentSyncConfig, output: Optional[Path], state: Optional[Path]
) -> Tuple[ContentSyncService, JobSink, Optional[SqliteIndexStateStore]]:
    """Wire fetcher, sink and state store for one CLI invocation."""
    fetcher = RepositoryFetcher(
        client=build_http_client(cfg.http),
        cache=ResponseCache.from_policy(cfg.cache),
        retry=cfg.retry,
    )
    set_fetcher(fetcher)

    sink: JobSink = JsonlJobSink(output) if output else InMemoryJobSink()
    store = SqliteIndexStateStore(state) if state else None
    if store is not None:
        sink = RecordingJobSink(sink, store)

    service = ContentSyncService(cfg, sink, fetcher=fetcher, context=store)
    return service, sink, store


def _close(sink: JobSink, store: Optional[SqliteIndexStateStore]) -> None:
    sink.close()
    if store is not None:
        store.close()


def _summary(title: str, source: str, sink: JobSink, cfg: ContentSyncConfig) -> None:
    console.print(
        Panel(
            f"[bold green]✓ Run finished[/bold green]\n"
            f"Source: {source}\n"
            f"Jobs emitted: {getattr(sink, 'count', 0)}\n"
            f"Config hash: {cfg.config_hash()[:8]}...",
            title=title,
        )
    )


# ============================================================================
# Commands
# ============================================================================


@app.command("index-all")
def index_all(
    source: str = typer.Argument(..., help="Source name"),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    by_id: bool = typer.Option(False, "--by-id", help="Treat SOURCE as a source id"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="JSONL file for jobs"),
    state: Optional[Path] = typer.Option(None, "--state", help="SQLite index state database"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Walk a source from its root path and emit index jobs."""
    try:
        cfg = _load(config, verbose)
        service, sink, store = _build_service(cfg, output, state)
        try:
            ran = service.index_all_by_id(source) if by_id else service.index_all_by_name(source)
        finally:
            _close(sink, store)

        if not ran:
            console.print(f"[yellow]⚠ Full run for {source} was skipped[/yellow]")
            raise typer.Exit(code=1)
        _summary("Index All", source, sink, cfg)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command("index-paths")
def index_paths(
    source: str = typer.Argument(..., help="Source name"),
    paths: List[str] = typer.Argument(..., help="Repository paths (or URLs with --by-url)"),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    event: IndexEvent = typer.Option(IndexEvent.NONE, "--event", help="Triggering event"),
    recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="Index children"),
    by_url: bool = typer.Option(False, "--by-url", help="PATHS are public URLs"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="JSONL file for jobs"),
    state: Optional[Path] = typer.Option(None, "--state", help="SQLite index state database"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Index explicit paths as a standalone run."""
    try:
        cfg = _load(config, verbose)
        service, sink, store = _build_service(cfg, output, state)
        path_list = PathList(
            paths=list(paths),
            event=event,
            recursive=recursive,
            attribute=PathAttribute.URL if by_url else PathAttribute.ID,
        )
        try:
            processed = service.index_paths(source, path_list)
        finally:
            _close(sink, store)

        if not processed:
            console.print(f"[yellow]⚠ No paths processed for {source}[/yellow]")
            raise typer.Exit(code=1)
        _summary("Index Paths", source, sink, cfg)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command("list-sources")
def list_sources(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
) -> None:
    """Show configured sources."""
    try:
        cfg = load_config(path=config)

        table = Table(title="Sources")
        table.add_column("Name", style="cyan")
        table.add_column("Root path", style="green")
        table.add_column("Content type", style="yellow")
        table.add_column("Environments", style="magenta")

        for src in cfg.sources:
            environments = [
                name for name, enabled in (("author", src.author), ("publish", src.publish))
                if enabled
            ]
            table.add_row(
                src.name if src.enabled else f"{src.name} [red](disabled)[/red]",
                src.root_path,
                src.content_type or "-",
                ", ".join(environments) or "-",
            )
        console.print(table)

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command("validate-config")
def validate_config(
    config: str = typer.Argument(..., help="Path to config file"),
) -> None:
    """Validate a config file."""
    try:
        validate_config_file(config)
        console.print("[green]✓ Config valid[/green]")
    except Exception as e:
        console.print(f"[red]✗ Invalid: {e}[/red]")
        raise typer.Exit(code=1)


@app.command("config-schema")
def config_schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export JSON Schema for ContentSyncConfig."""
    try:
        schema_data = export_config_schema()

        if output:
            output.write_text(json.dumps(schema_data, indent=2))
            console.print(f"[green]✓ Schema written to {output}[/green]")
        else:
            typer.echo(json.dumps(schema_data, indent=2))

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
