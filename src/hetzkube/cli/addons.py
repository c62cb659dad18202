"""Cluster add-on commands"""

import click

from hetzkube.addons import metrics_server, node_problem_detector
from hetzkube.cli.common import confirmer, handle_errors


@click.group()
def addons():
    """Install cluster add-ons"""
    pass


@addons.command("metrics-server")
@click.option("--force", is_flag=True, help="Reinstall even if working, ignore node issues")
@click.pass_context
@handle_errors
def metrics_server_cmd(ctx, force):
    """Install or repair metrics-server"""
    metrics_server.install(ctx.obj["config"], force, confirmer(ctx))


@addons.command("node-problem-detector")
@click.option("--force", is_flag=True, help="Reinstall even if already running")
@click.option("--uninstall", is_flag=True, help="Remove node-problem-detector")
@click.pass_context
@handle_errors
def node_problem_detector_cmd(ctx, force, uninstall):
    """Install node-problem-detector as a DaemonSet"""
    node_problem_detector.install(ctx.obj["config"], force=force, remove=uninstall)
