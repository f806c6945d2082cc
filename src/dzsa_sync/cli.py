"""CLI entry point for dzsa-sync."""

import asyncio
from pathlib import Path

import click

from dzsa_sync import __version__
from dzsa_sync.config import Config, load_config
from dzsa_sync.errors import ConfigError
from dzsa_sync.logging import setup_logging


def _load_or_exit(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as e:
        click.echo(f"config: {e}", err=True)
        raise SystemExit(1)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to the YAML configuration file.",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None) -> None:
    """dzsa-sync - Keep DayZ servers listed on the DZSA launcher."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the sync daemon until interrupted."""
    from dzsa_sync.daemon import Daemon
    from dzsa_sync.errors import StartupError

    config = _load_or_exit(ctx.obj["config_path"])
    logger = setup_logging(config)

    async def _run():
        daemon = Daemon(config=config)
        try:
            await daemon.start()
            click.echo(f"Syncing {len(config.servers)} server(s), API on port {config.api.port}")
            click.echo("Press Ctrl+C to stop")
            await daemon.run_forever()
        except StartupError as e:
            logger.error(f"Startup error: {e}")
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


@main.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate the configuration file and print a summary."""
    config = _load_or_exit(ctx.obj["config_path"])

    if config.detect_ip:
        click.echo("IP mode: detect")
    else:
        click.echo(f"IP mode: fixed ({config.external_ip})")
    click.echo(f"API: {config.api.host or '0.0.0.0'}:{config.api.port}")
    click.echo(f"{'PORT':<8} {'NAME'}")
    click.echo("-" * 40)
    for server in config.servers:
        click.echo(f"{server.port:<8} {server.name}")
    click.echo("Configuration OK")


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"dzsa-sync version {__version__}")
