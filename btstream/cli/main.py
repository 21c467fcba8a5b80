"""CLI for btstream.

Provides:
- `serve`: run the HTTP gateway until interrupted
- `library`: list the torrents the local library engine can resolve
- `show-config`: print the effective configuration as TOML
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from btstream import __version__
from btstream.config import init_config
from btstream.engine.library import LibraryEngine
from btstream.engine.magnet import generate_magnet_link
from btstream.models import Config, LogLevel
from btstream.server.http_server import create_gateway
from btstream.utils.exceptions import ConfigurationError
from btstream.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    size = float(bytes_count)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PiB"


def _load_config(ctx: click.Context, overrides: dict[str, Any]) -> Config:
    """Load configuration, apply CLI overrides and set up logging."""
    try:
        manager = init_config(ctx.obj.get("config_file"), configure_logging=False)
        config = manager.apply_overrides(overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    # -v: info, -vv: debug; verbosity only ever lowers the threshold
    verbosity = ctx.obj.get("verbosity", 0)
    if verbosity >= 2:
        config.observability.log_level = LogLevel.DEBUG
    elif verbosity == 1 and config.observability.log_level not in (
        LogLevel.DEBUG,
        LogLevel.INFO,
    ):
        config.observability.log_level = LogLevel.INFO

    setup_logging(config.observability)
    return config


def _library_overrides(torrent_dir: str | None, data_dir: str | None) -> dict[str, Any]:
    return {
        "library.torrent_dir": torrent_dir,
        "library.data_dir": data_dir,
    }


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.version_option(__version__, prog_name="btstream")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: int) -> None:
    """Btstream - stream torrent files over HTTP."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config
    ctx.obj["verbosity"] = verbose


@cli.command()
@click.option("--host", help="Host to bind to")
@click.option("--port", "-p", type=int, help="Port to bind to")
@click.option(
    "--torrent-dir",
    type=click.Path(file_okay=False),
    help="Directory scanned for .torrent files",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    help="Directory holding torrent payloads",
)
@click.option("--metadata-timeout", type=float, help="Metadata timeout (s)")
@click.option(
    "--cors-origin",
    "cors_origins",
    multiple=True,
    help="Allowed CORS origin (repeatable, '*' for any)",
)
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    torrent_dir: str | None,
    data_dir: str | None,
    metadata_timeout: float | None,
    cors_origins: tuple[str, ...],
) -> None:
    """Run the streaming gateway."""
    overrides = {
        "server.host": host,
        "server.port": port,
        "server.cors_origins": list(cors_origins) or None,
        "resolver.metadata_timeout": metadata_timeout,
        **_library_overrides(torrent_dir, data_dir),
    }
    config = _load_config(ctx, overrides)

    console = Console()
    console.print(
        Panel.fit(
            f"[bold]btstream {__version__}[/bold]\n"
            f"Listening on [cyan]http://{config.server.host}:{config.server.port}"
            f"{config.server.api_base_path}[/cyan]\n"
            f"Library: [green]{config.library.torrent_dir}[/green] -> "
            f"[green]{config.library.data_dir}[/green]\n"
            f"Metadata timeout: {config.resolver.metadata_timeout:.0f}s",
            title="Torrent streaming gateway",
        )
    )

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_serve(config))
    console.print("[yellow]Gateway stopped[/yellow]")


async def _serve(config: Config) -> None:
    gateway = create_gateway(config)
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown.set)

    await gateway.start()
    try:
        await shutdown.wait()
        logger.info("Shutdown requested")
    finally:
        await gateway.stop()


@cli.command()
@click.option(
    "--torrent-dir",
    type=click.Path(file_okay=False),
    help="Directory scanned for .torrent files",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False),
    help="Directory holding torrent payloads",
)
@click.pass_context
def library(ctx: click.Context, torrent_dir: str | None, data_dir: str | None) -> None:
    """List torrents available to the local library engine."""
    config = _load_config(ctx, _library_overrides(torrent_dir, data_dir))
    engine = LibraryEngine.from_config(config)
    torrents = engine.scan()

    console = Console()
    if not torrents:
        console.print(f"[yellow]No torrents found in {engine.torrent_dir}[/yellow]")
        return

    table = Table(title=f"Library: {engine.torrent_dir}")
    table.add_column("Info Hash", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    for torrent in torrents:
        table.add_row(
            torrent.info_hash,
            torrent.name,
            str(len(torrent.files)),
            _format_size(sum(f.length for f in torrent.files)),
        )
    console.print(table)

    console.print("\n[bold]Magnet links:[/bold]")
    for torrent in torrents:
        console.print(
            generate_magnet_link(torrent.info_hash, torrent.name),
            soft_wrap=True,
            markup=False,
            highlight=False,
        )


@cli.command("show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration as TOML."""
    try:
        manager = init_config(ctx.obj.get("config_file"), configure_logging=False)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    click.echo(manager.export())


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
