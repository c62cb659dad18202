"""Control plane commands"""

import click

from hetzkube.cli.common import handle_errors
from hetzkube.system import kubeadm


@click.group("control-plane")
def control_plane():
    """Initialise or join control plane nodes"""
    pass


@control_plane.command("init")
@click.argument("hostname", required=False)
@click.pass_context
@handle_errors
def init(ctx, hostname):
    """Run kubeadm init on the vSwitch address

    HOSTNAME is added to the API server certificate SANs (defaults to the
    system hostname).
    """
    kubeadm.init_control_plane(ctx.obj["config"], hostname)


@control_plane.command("join")
@click.argument("control_plane_ip")
@click.argument("token")
@click.argument("ca_cert_hash")
@click.argument("certificate_key")
@click.argument("hostname", required=False)
@click.pass_context
@handle_errors
def join(ctx, control_plane_ip, token, ca_cert_hash, certificate_key, hostname):
    """Join this node as an additional control plane

    \b
    On the existing control plane, get the values with:
      kubeadm token create --print-join-command
      kubeadm init phase upload-certs --upload-certs
    """
    kubeadm.join_control_plane(
        ctx.obj["config"], control_plane_ip, token, ca_cert_hash, certificate_key, hostname
    )
