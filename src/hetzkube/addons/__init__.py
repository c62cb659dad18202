"""Cluster add-ons installed from packaged manifest templates."""

import time
from pathlib import Path
from typing import Any, Callable, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined
from rich.progress import Progress, SpinnerColumn, TextColumn

from hetzkube.errors import PreflightError
from hetzkube.log import console, log
from hetzkube.system import kubectl as kubectl_mod

templates = Environment(
    loader=PackageLoader("hetzkube.addons", "manifests"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_manifest(name: str, **values: str) -> str:
    """Render ``manifests/<name>.yaml.j2`` with ``values``."""
    return templates.get_template(f"{name}.yaml.j2").render(**values)


def require_control_plane(admin_kubeconfig: str) -> kubectl_mod.Kubectl:
    if not Path(admin_kubeconfig).exists():
        raise PreflightError(f"Not a control plane node ({admin_kubeconfig} missing)")
    kubectl = kubectl_mod.Kubectl(admin_kubeconfig)
    if not kubectl.cluster_reachable():
        raise PreflightError("kubectl not working", ["Check: kubectl cluster-info"])
    return kubectl


def poll(description: str, check: Callable[[], Optional[Any]], timeout: int, interval: int = 10) -> Optional[Any]:
    """Call ``check`` every ``interval`` seconds until it returns a truthy value."""
    waited = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"{description} (timeout: {timeout}s)...", total=None)
        while waited < timeout:
            value = check()
            if value:
                return value
            time.sleep(interval)
            waited += interval
    log.debug(f"{description}: gave up after {timeout}s")
    return None
