#!/usr/bin/env python3
"""hetzkube CLI - Main entry point"""

from pathlib import Path

import click
import yaml

from hetzkube.cli.common import handle_errors
from hetzkube.config.manager import ConfigManager
from hetzkube.log import console, log


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), envvar="HETZKUBE_CONFIG", help="Config file path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("-y", "--yes", "assume_yes", is_flag=True, help="Answer yes to confirmation prompts")
@click.pass_context
@handle_errors
def cli(ctx, config_path, verbose, assume_yes):
    """hetzkube - Kubernetes on Hetzner dedicated servers"""
    ctx.ensure_object(dict)

    config_manager = ConfigManager(Path(config_path) if config_path else None)
    cfg = config_manager.load()

    log.set_level("debug" if verbose else cfg["logging"]["level"])

    ctx.obj["config"] = cfg
    ctx.obj["config_manager"] = config_manager
    ctx.obj["verbose"] = verbose
    ctx.obj["assume_yes"] = assume_yes


@cli.command()
def version():
    """Show version information"""
    from hetzkube import __version__

    console.print(f"hetzkube version {__version__}")


@cli.group("config")
def config_group():
    """Inspect or create the configuration file"""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Print the effective configuration"""
    console.print(f"# {ctx.obj['config_manager'].config_path}", markup=False, soft_wrap=True)
    console.print(yaml.safe_dump(ctx.obj["config"], default_flow_style=False, sort_keys=False), markup=False, soft_wrap=True)


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx, force):
    """Write the default configuration to the config file"""
    manager = ctx.obj["config_manager"]
    if manager.config_path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/yellow] {manager.config_path} (use --force)")
        raise click.exceptions.Exit(1)
    manager.save(manager.load())
    console.print(f"[green]✓[/green] Wrote {manager.config_path}")


# Import subcommands
from hetzkube.cli import addons, control_plane, etcd, network, setup, tools, vswitch, worker

cli.add_command(network.network)
cli.add_command(vswitch.vswitch)
cli.add_command(tools.tools)
cli.add_command(control_plane.control_plane)
cli.add_command(worker.worker)
cli.add_command(setup.setup)
cli.add_command(etcd.etcd)
cli.add_command(addons.addons)


if __name__ == "__main__":
    cli()
