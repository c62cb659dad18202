"""Kernel network preparation commands"""

import click

from hetzkube.cli.common import handle_errors
from hetzkube.log import log
from hetzkube.system import network as network_ops
from hetzkube.system import shell


@click.group()
def network():
    """Prepare kernel networking for Kubernetes"""
    pass


@network.command("init")
@handle_errors
def init():
    """Load kernel modules, set sysctl parameters and disable swap"""
    shell.require_root()
    if not network_ops.init_network():
        log.warn("Network initialization finished with warnings")
