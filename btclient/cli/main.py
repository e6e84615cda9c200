"""Command line interface for btclient.

Commands:
- ``resolve``: show the content identifier of any torrent identifier
- ``discover``: run discovery for a torrent and print the peers found
- ``version``: print version and peer id prefix
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from btclient.config.config import ConfigManager
from btclient.core.identifier import ParsedIdentifier, parse_identifier
from btclient.models import ClientConfig, LogLevel
from btclient.session.client import Client
from btclient.utils.exceptions import BTClientError
from btclient.utils.logging_config import setup_logging
from btclient.utils.version import get_peer_id_prefix, get_version

logger = logging.getLogger(__name__)


def _get_config_from_context(ctx: click.Context) -> ClientConfig:
    """Get the configuration loaded by the ``cli`` group."""
    if ctx.obj and ctx.obj.get("client_config") is not None:
        return ctx.obj["client_config"]
    return ClientConfig()


def _raise_cli_error(message: str) -> None:
    raise click.ClickException(message)


def _read_identifier(identifier: str | None, file: str | None) -> Any:
    if file:
        return Path(file).read_bytes()
    if not identifier:
        _raise_cli_error("Provide an identifier or --file")
    return identifier


def _identifier_table(parsed: ParsedIdentifier) -> Table:
    descriptor = parsed.descriptor
    table = Table(title="Torrent identifier", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Info hash", descriptor.content_id.hex)
    table.add_row("Kind", parsed.kind.value)
    table.add_row("Name", descriptor.name or "-")
    table.add_row(
        "Length", str(descriptor.length) if descriptor.length is not None else "-"
    )
    table.add_row("Trackers", "\n".join(descriptor.announce) or "-")
    return table


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.pass_context
def cli(ctx, config, verbose):
    """btclient - torrent identifier resolution and peer discovery."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbosity"] = verbose

    try:
        config_manager = ConfigManager(config, configure_logging=False)
    except BTClientError as e:
        raise click.ClickException(str(e)) from e
    client_config = config_manager.config
    ctx.obj["client_config"] = client_config

    observability = client_config.observability
    if verbose >= 2:
        observability = observability.model_copy(update={"log_level": LogLevel.DEBUG})
    elif verbose == 1:
        observability = observability.model_copy(update={"log_level": LogLevel.INFO})
    setup_logging(observability)


@cli.command()
@click.argument("identifier", required=False)
@click.option(
    "--file",
    "-f",
    type=click.Path(exists=True, dir_okay=False),
    help="Read a .torrent file instead",
)
def resolve(identifier, file):
    """Resolve IDENTIFIER (hex, base32, magnet URI) to its info hash."""
    console = Console()
    try:
        parsed = parse_identifier(_read_identifier(identifier, file))
    except BTClientError as e:
        raise click.ClickException(str(e)) from e
    console.print(_identifier_table(parsed))


async def _discover(
    config: ClientConfig, identifier: Any, duration: float, console: Console
) -> int:
    peers: set[str] = set()

    def on_peer(address, entry) -> None:
        if str(address) not in peers:
            peers.add(str(address))
            console.print(f"[green]peer[/green] {address}")

    def on_warning(warning, entry) -> None:
        console.print(f"[yellow]warning[/yellow] {warning.message}")

    async with Client(config) as client:
        client.on_peer.subscribe(on_peer)
        client.on_warning.subscribe(on_warning)
        entry = await client.add(identifier)
        console.print(
            f"Discovering peers for [cyan]{entry.name}[/cyan] "
            f"on port {client.torrent_port} for {duration:.0f}s"
        )
        await asyncio.sleep(duration)
    return len(peers)


@cli.command()
@click.argument("identifier", required=False)
@click.option(
    "--file",
    "-f",
    type=click.Path(exists=True, dir_okay=False),
    help="Read a .torrent file instead",
)
@click.option("--port", type=int, help="Listen port to announce")
@click.option("--tracker", "trackers", multiple=True, help="Extra tracker URL")
@click.option(
    "--duration",
    type=float,
    default=30.0,
    show_default=True,
    help="Seconds to run discovery",
)
@click.pass_context
def discover(ctx, identifier, file, port, trackers, duration):
    """Announce IDENTIFIER to its trackers and print discovered peers."""
    console = Console()
    config = _get_config_from_context(ctx)
    overrides: dict[str, Any] = {}
    if port is not None:
        overrides["torrent_port"] = port
    target = _read_identifier(identifier, file)
    try:
        if overrides:
            config = config.with_overrides(**overrides)
        descriptor = parse_identifier(target).descriptor
        if trackers:
            descriptor = descriptor.with_announce(trackers)
        count = asyncio.run(_discover(config, descriptor, duration, console))
    except BTClientError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[bold]{count}[/bold] unique peers found")


@cli.command()
def version():
    """Show version information."""
    console = Console()
    console.print(f"btclient {get_version()}")
    console.print(f"peer id prefix: {get_peer_id_prefix().decode()}")


def main() -> None:
    """Console script entry point."""
    cli()  # pragma: no cover


if __name__ == "__main__":
    main()
