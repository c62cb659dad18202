"""Complete node setup commands"""

import click

from hetzkube.cli.common import confirmer, handle_errors
from hetzkube.installer import bootstrap


@click.group()
def setup():
    """Run every setup step for a new node"""
    pass


@setup.command("control-plane")
@click.argument("address")
@click.option("--hostname", help="DNS name for the API server certificate")
@click.option("--dry-run", is_flag=True, help="Show the steps without executing them")
@click.pass_context
@handle_errors
def control_plane(ctx, address, hostname, dry_run):
    """Prepare this server as the first control plane (ADDRESS = vSwitch IP/prefix)"""
    bootstrap.setup_control_plane(
        ctx.obj["config"], address, confirmer(ctx), dry_run=dry_run, hostname=hostname
    )


@setup.command("worker")
@click.argument("address")
@click.option("--dry-run", is_flag=True, help="Show the steps without executing them")
@click.pass_context
@handle_errors
def worker(ctx, address, dry_run):
    """Prepare this server as a worker node (ADDRESS = vSwitch IP/prefix)"""
    bootstrap.setup_worker(ctx.obj["config"], address, confirmer(ctx), dry_run=dry_run)
