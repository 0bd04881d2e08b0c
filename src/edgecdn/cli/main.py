"""
CLI for the edge/origin delivery system.

Commands:
    edgecdn edge              - Run the edge server
    edgecdn origin            - Run the origin server
    edgecdn sign RESOURCE     - Print a signed URL
    edgecdn register PATH     - Record an existing file at the origin
    edgecdn config            - Show current configuration
    edgecdn version           - Print version
"""

from __future__ import annotations

import asyncio
import mimetypes
import secrets
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from edgecdn import __version__
from edgecdn.config import Settings, clear_settings_cache, get_settings
from edgecdn.exceptions import ConfigurationError
from edgecdn.logging import set_node, setup_logging
from edgecdn.origin.repository import FileRepository
from edgecdn.security.signing import SignedURLVerifier
from edgecdn.types import FileRecord

app = typer.Typer(
    name="edgecdn",
    help="Edge/origin file delivery with an in-memory edge cache",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ConfigurationError:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'edgecdn config' to see what's wrong."
        )
        raise typer.Exit(1)
    return settings


@app.command()
def edge(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind host")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Run the edge server."""
    import uvicorn

    from edgecdn.edge.app import create_edge_app

    settings = _require_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    set_node("edge")

    bind_host = host or settings.EDGE_HOST
    bind_port = port or settings.EDGE_PORT
    console.print(f"[bold]Edge[/bold] http://{bind_host}:{bind_port}  origin={settings.origin_url}")
    uvicorn.run(create_edge_app(settings), host=bind_host, port=bind_port, log_level="info")


@app.command()
def origin(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind host")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Run the origin server."""
    import uvicorn

    from edgecdn.origin.app import create_origin_app

    settings = _require_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    set_node("origin")
    settings.ensure_directories()

    bind_host = host or settings.ORIGIN_HOST
    bind_port = port or settings.ORIGIN_PORT
    console.print(f"[bold]Origin[/bold] http://{bind_host}:{bind_port}")
    uvicorn.run(create_origin_app(settings), host=bind_host, port=bind_port, log_level="info")


@app.command()
def sign(
    resource_id: Annotated[str, typer.Argument(help="Resource id or filename")],
    ttl: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", help="Lifetime in seconds"),
    ] = None,
) -> None:
    """Print a signed URL for a resource."""
    settings = _require_settings()
    if settings.uses_default_secret:
        error_console.print("[yellow]Warning:[/yellow] SIGNING_SECRET is the default value.")

    signed = SignedURLVerifier.from_settings(settings).sign(resource_id, ttl)
    console.print(signed.url, soft_wrap=True, highlight=False)


async def _register(settings: Settings, record: FileRecord) -> None:
    repository = FileRepository(settings.DB_PATH)
    await repository.init()
    try:
        await repository.insert(record)
    finally:
        await repository.close()


@app.command()
def register(
    path: Annotated[Path, typer.Argument(help="File already on disk", exists=True, dir_okay=False)],
    name: Annotated[
        Optional[str],
        typer.Option("--name", "-n", help="Logical filename (defaults to the file name)"),
    ] = None,
    private: Annotated[
        bool,
        typer.Option("--private", help="Mark the file as private"),
    ] = False,
) -> None:
    """Record an existing file in the origin metadata store."""
    settings = _require_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    resolved = path.resolve()
    mime_type, _ = mimetypes.guess_type(resolved.name)
    record = FileRecord(
        id=secrets.token_hex(16),
        filename=name or resolved.name,
        original_filename=resolved.name,
        mime_type=mime_type or "application/octet-stream",
        size=resolved.stat().st_size,
        storage_path=str(resolved),
        is_public=not private,
    )
    asyncio.run(_register(settings, record))

    console.print(f"[green]Registered[/green] {record.filename} as [bold]{record.id}[/bold]")


@app.command()
def config() -> None:
    """Show current configuration with secrets redacted."""
    console.print()
    console.print("[bold]edgecdn Configuration[/bold]")
    console.print()

    try:
        clear_settings_cache()
        settings = get_settings()
    except ConfigurationError as e:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        for field in e.context.get("fields", []):
            error_console.print(f"  - {field}")
        raise typer.Exit(1) from e

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"edgecdn version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
