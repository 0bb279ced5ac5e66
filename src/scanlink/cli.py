"""CLI entry point for the scanlink server."""

import asyncio
from pathlib import Path

import click

from scanlink import __version__
from scanlink.config import load_config
from scanlink.errors import ConfigError, RenderError
from scanlink.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """scanlink - Open map content on a display by scanning a QR code."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


async def _wait_for_shutdown() -> None:
    """Block until the task is cancelled (Ctrl+C)."""
    await asyncio.Event().wait()


@main.command()
@click.option("--host", default=None, help="Host to bind to.")
@click.option("--port", "-p", type=int, default=None, help="Port to bind to.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the pairing server until interrupted."""
    from scanlink.server import PairingServer

    config = ctx.obj["config"]
    bind_host = host or config.host
    bind_port = config.port if port is None else port

    async def _serve():
        server = PairingServer(config=config)
        try:
            await server.start(bind_host, bind_port)
            click.echo(f"Server started on {bind_host}:{server.get_port()}")
            click.echo(f"Scan codes point at {config.base_url}")
            click.echo("Press Ctrl+C to stop")
            await _wait_for_shutdown()
        finally:
            await server.close()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@main.command()
@click.argument("url")
def qr(url: str) -> None:
    """Print a QR code for URL to the terminal."""
    from scanlink.qr_renderer import QrRenderer

    try:
        click.echo(QrRenderer().to_terminal(url))
    except RenderError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"scanlink version {__version__}")
