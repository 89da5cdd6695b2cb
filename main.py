#!/usr/bin/env python3
"""mclaunch command line entry point"""

import asyncio
import logging
import sys
from pathlib import Path

import click

from mclaunch.auth import OfflineAuthenticator
from mclaunch.config import LauncherConfig, LaunchOptions
from mclaunch.core.game_launcher import GameLauncher, describe_command
from mclaunch.errors import LauncherError
from mclaunch.progress import GAME_EXIT_STAGES, ProgressEvent, ProgressSink, QueueSink, Stage
from mclaunch.runtime.java_manager import JavaManager
from mclaunch.utils import AsyncHTTPClient, setup_logging
from mclaunch.versions import VersionManager

log = logging.getLogger("mclaunch")

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def echo_progress(event: ProgressEvent) -> None:
    line = f"[{event.percent:3d}%] {event.stage.value}: {event.message}"
    err = event.stage in (Stage.ERROR, Stage.CRASHED)
    click.echo(click.style(line, fg="red") if err else line, err=err)


async def echo_until_exit(sink: QueueSink) -> None:
    """Print events handed over by the game monitor until the game is gone."""
    while True:
        event = await sink.get()
        echo_progress(event)
        if event.stage in GAME_EXIT_STAGES:
            return


def http_client(config: LauncherConfig) -> AsyncHTTPClient:
    return AsyncHTTPClient(headers={"User-Agent": config.user_agent})


def run(coro):
    try:
        return asyncio.run(coro)
    except LauncherError as e:
        raise click.ClickException(str(e)) from e


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Launcher data directory (defaults to MCLAUNCH_ROOT or the platform app-data dir).")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output.")
@click.pass_context
def cli(ctx: click.Context, root, verbose: bool) -> None:
    """Install and launch Minecraft instances."""
    overrides = {"root_dir": root} if root else {}
    config = LauncherConfig.from_env(**overrides)
    setup_logging(config.root_dir / "logs", verbose=verbose)
    ctx.obj = config


@cli.command("versions")
@click.option("--limit", type=int, default=20, show_default=True, help="Number of releases to list.")
@click.pass_obj
def versions_cmd(config: LauncherConfig, limit: int) -> None:
    """List release versions, newest first."""

    async def main():
        async with http_client(config) as http:
            return await VersionManager(http, config).release_versions(limit)

    for version_id in run(main()):
        click.echo(version_id)


@cli.command("java")
@click.argument("mc_version")
@click.option("--install", is_flag=True, help="Download the runtime when none is found.")
@click.pass_obj
def java_cmd(config: LauncherConfig, mc_version: str, install: bool) -> None:
    """Show which Java a game version needs and where it is."""
    major = JavaManager.required_major(mc_version)
    click.echo(f"Minecraft {mc_version} requires Java {major}")

    async def main():
        async with http_client(config) as http:
            return await JavaManager(config, http).ensure(major)

    found = run(main()) if install else JavaManager(config).locate(major)
    click.echo(f"Java {major}: {found or 'not installed'}")


def launch_options(func):
    options = [
        click.argument("instance_dir", type=click.Path(file_okay=False, path_type=Path)),
        click.option("--version", "mc_version", required=True, help="Minecraft version id."),
        click.option("--loader", type=click.Choice(["vanilla", "fabric", "forge"]), default="vanilla",
                     show_default=True),
        click.option("--user", default="Player", show_default=True, help="Offline player name."),
        click.option("--ram", type=int, default=4096, show_default=True, help="Max heap in MB."),
        click.option("--width", type=int, default=854, show_default=True),
        click.option("--height", type=int, default=480, show_default=True),
        click.option("--mod", "mods", multiple=True, help="Mod jar URL; repeatable."),
        click.option("--modpack", "modpack_url", default=None, help="Modpack zip URL."),
        click.option("--force-update", is_flag=True, help="Re-extract the modpack."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


async def _prepare(config, instance_dir, mc_version, loader, user, ram, width, height, mods,
                   modpack_url, force_update, sink: ProgressSink = echo_progress):
    try:
        profile = await OfflineAuthenticator.authenticate(user)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--user") from e
    options = LaunchOptions(ram_mb=ram, width=width, height=height, mods=list(mods),
                            modpack_url=modpack_url, force_update=force_update)
    async with http_client(config) as http:
        launcher = GameLauncher(config, http, sink=sink)
        command = await launcher.prepare(instance_dir, mc_version, profile, loader, options)
    return launcher, command


@cli.command("prepare")
@launch_options
@click.pass_obj
def prepare_cmd(config: LauncherConfig, instance_dir: Path, mc_version: str, **kwargs) -> None:
    """Download everything an instance needs and write its launch files."""
    _, command = run(_prepare(config, instance_dir, mc_version, **kwargs))
    for line in describe_command(command):
        click.echo(line)


async def _launch(config, instance_dir, mc_version, **kwargs):
    sink = QueueSink()
    printer = asyncio.create_task(echo_until_exit(sink))
    try:
        launcher, command = await _prepare(config, instance_dir, mc_version, sink=sink, **kwargs)
        handle = launcher.spawn(command, instance_dir)
        try:
            await printer
        except asyncio.CancelledError:
            handle.cancel()
            raise
        return handle.wait()
    finally:
        printer.cancel()


@cli.command("launch")
@launch_options
@click.pass_obj
def launch_cmd(config: LauncherConfig, instance_dir: Path, mc_version: str, **kwargs) -> None:
    """Prepare an instance, start the game and wait for it to exit."""
    sys.exit(run(_launch(config, instance_dir, mc_version, **kwargs)) or 0)


if __name__ == "__main__":
    cli()
