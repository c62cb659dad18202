"""Hetzner vSwitch commands"""

import click

from hetzkube.cli.common import handle_errors
from hetzkube.log import console
from hetzkube.system import shell
from hetzkube.system import vswitch as vswitch_ops


@click.group()
def vswitch():
    """Manage the Hetzner vSwitch VLAN interface"""
    pass


@vswitch.command("init")
@click.argument("address")
@click.pass_context
@handle_errors
def init(ctx, address):
    """Configure the vSwitch VLAN with ADDRESS (x.x.x.x/prefix)

    A bare address gets the configured default prefix (/24).
    """
    shell.require_root()
    vswitch_ops.configure_vswitch(address, ctx.obj["config"]["vswitch"])


@vswitch.command("show")
@click.pass_context
@handle_errors
def show(ctx):
    """Show the address assigned to the vSwitch interface"""
    interface = ctx.obj["config"]["vswitch"]["interface"]
    ip, prefix = vswitch_ops.vlan_address(interface)
    console.print(f"{interface}: [cyan]{ip}/{prefix}[/cyan]")
