"""Kubernetes tools installation commands"""

import click

from hetzkube.cli.common import handle_errors
from hetzkube.system import packages, shell


@click.group()
def tools():
    """Install kubeadm, kubelet, kubectl and CRI-O"""
    pass


@tools.command("install")
@click.option("--kubernetes-version", help="Kubernetes minor version, e.g. v1.34")
@click.option("--crio-version", help="CRI-O minor version, e.g. v1.34")
@click.pass_context
@handle_errors
def install(ctx, kubernetes_version, crio_version):
    """Add the upstream apt repositories and install the packages"""
    shell.require_root()
    versions = ctx.obj["config"]["versions"]
    packages.install_kube_tools(
        kubernetes_version or versions["kubernetes"],
        crio_version or versions["crio"],
    )
