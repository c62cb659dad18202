"""Worker node commands"""

import click

from hetzkube.cli.common import handle_errors
from hetzkube.system import kubeadm


@click.group()
def worker():
    """Manage worker nodes"""
    pass


@worker.command("join")
@click.argument("control_plane_ip")
@click.argument("token")
@click.argument("ca_cert_hash")
@click.argument("hostname", required=False)
@click.pass_context
@handle_errors
def join(ctx, control_plane_ip, token, ca_cert_hash, hostname):
    """Join this node to the cluster as a worker

    \b
    Get the values on the control plane with:
      kubeadm token create --print-join-command
    """
    kubeadm.join_worker(ctx.obj["config"], control_plane_ip, token, ca_cert_hash, hostname)
