"""node-problem-detector installation.

Reports kernel deadlocks, read-only filesystems and runtime restart loops as
node conditions and events.
"""

import re
import time
from typing import Any, Dict, List, Tuple

from rich.table import Table

from hetzkube.addons import poll, render_manifest, require_control_plane
from hetzkube.errors import HetzkubeError
from hetzkube.log import console, log
from hetzkube.system import shell
from hetzkube.system.kubectl import Kubectl

NAMESPACE = "kube-system"
SELECTOR = "app=node-problem-detector"
IMAGE = "registry.k8s.io/node-problem-detector/node-problem-detector:{version}"

CONDITIONS = [
    "KernelDeadlock",
    "ReadonlyFilesystem",
    "FrequentKubeletRestart",
    "FrequentContainerdRestart",
]


def daemonset_status(kubectl: Kubectl) -> Tuple[int, int]:
    """(numberReady, desiredNumberScheduled)"""

    def field(name):
        out = kubectl.jsonpath(["daemonset", "node-problem-detector"], f"{{.status.{name}}}", NAMESPACE)
        return int(out) if out and out.isdigit() else 0

    return field("numberReady"), field("desiredNumberScheduled")


def check_exists(kubectl: Kubectl) -> Tuple[bool, int, int]:
    log.info("Checking if node-problem-detector is installed...")
    if not kubectl.exists("daemonset", "node-problem-detector", NAMESPACE):
        log.info("node-problem-detector not installed")
        return False, 0, 0
    ready, desired = daemonset_status(kubectl)
    log.ok(f"node-problem-detector installed: {ready}/{desired} nodes ready")
    return True, ready, desired


def uninstall(kubectl: Kubectl) -> None:
    log.info("Uninstalling node-problem-detector...")
    kubectl.delete("daemonset", ["node-problem-detector"], NAMESPACE)
    kubectl.delete("configmap", ["node-problem-detector-config"], NAMESPACE)
    kubectl.delete("serviceaccount", ["node-problem-detector"], NAMESPACE)
    kubectl.delete("clusterrole", ["node-problem-detector"])
    kubectl.delete("clusterrolebinding", ["node-problem-detector"])
    time.sleep(3)
    log.ok("node-problem-detector uninstalled")


def apply(kubectl: Kubectl, version: str) -> None:
    log.info(f"Installing node-problem-detector {version}...")
    manifest = render_manifest("node-problem-detector", image=IMAGE.format(version=version))
    result = kubectl.apply_manifest(manifest)
    if result.returncode != 0:
        raise HetzkubeError(f"Failed to apply NPD manifest: {shell.output(result).strip()}")
    log.ok("node-problem-detector manifest applied")


def wait_ready(kubectl: Kubectl, timeout: int = 120) -> bool:
    def all_ready():
        ready, desired = daemonset_status(kubectl)
        return (ready, desired) if ready > 0 and ready == desired else None

    status = poll("Waiting for node-problem-detector pods", all_ready, timeout)
    if status:
        log.ok(f"All {status[0]}/{status[1]} pods ready")
        return True
    log.warn(f"NPD pods not all ready within {timeout}s")
    return False


def condition_label(status: str) -> str:
    if status == "False":
        return "OK"
    if status == "True":
        return "PROBLEM"
    return "N/A"


def node_conditions(kubectl: Kubectl) -> Dict[str, Dict[str, str]]:
    """{node: {condition: status}} for the NPD-managed conditions"""
    result: Dict[str, Dict[str, str]] = {}
    for cond in CONDITIONS:
        expr = f'{{range .items[*]}}{{.metadata.name}}={{.status.conditions[?(@.type=="{cond}")].status}}{{"\\n"}}{{end}}'
        out = kubectl.jsonpath(["nodes"], expr) or ""
        for line in out.splitlines():
            if "=" not in line:
                continue
            node, status = line.split("=", 1)
            result.setdefault(node.strip(), {})[cond] = status.strip()
    return result


def show_node_conditions(kubectl: Kubectl) -> None:
    conditions = node_conditions(kubectl)
    table = Table(title="Node conditions from NPD")
    table.add_column("Node", style="cyan")
    for cond in CONDITIONS:
        table.add_column(cond)

    styles = {"OK": "green", "PROBLEM": "red", "N/A": "dim"}
    for node, statuses in sorted(conditions.items()):
        cells = []
        for cond in CONDITIONS:
            label = condition_label(statuses.get(cond, ""))
            cells.append(f"[{styles[label]}]{label}[/{styles[label]}]")
        table.add_row(node, *cells)
    console.print(table)


def show_recent_events(kubectl: Kubectl) -> None:
    log.info("Recent NPD events:")
    out = kubectl.output(
        [
            "get", "events", "-n", "default",
            "--field-selector", "source=node-problem-detector",
            "--sort-by=.lastTimestamp",
        ]
    )
    lines = [line for line in out.splitlines() if line.strip()]
    if lines and not any("No resources" in line for line in lines):
        log.echo("\n".join(lines[-10:]))
    else:
        log.echo("  No recent events (this is good!)")


def error_lines(logs: str) -> List[str]:
    return [line for line in logs.splitlines() if re.search(r"error|failed", line, re.IGNORECASE)]


def install(config: Dict[str, Any], force: bool = False, remove: bool = False) -> bool:
    """Install, reinstall or remove node-problem-detector."""
    shell.require_root()
    log.ok("Running as root")
    kubectl = require_control_plane(config["cluster"]["admin_kubeconfig"])
    log.ok("Running on control plane, kubectl working")

    if remove:
        uninstall(kubectl)
        return True

    exists, ready, desired = check_exists(kubectl)

    if exists and ready == desired and ready > 0 and not force:
        log.ok("node-problem-detector already installed and running")
        show_node_conditions(kubectl)
        show_recent_events(kubectl)
        log.echo("Use --force to reinstall or --uninstall to remove.")
        return False

    if exists and force:
        log.info("Force reinstall requested")
        uninstall(kubectl)

    apply(kubectl, config["versions"]["node_problem_detector"])

    if not wait_ready(kubectl, 120):
        log.warn("Some pods may not be ready. Checking logs...")
        errors = error_lines(kubectl.logs(SELECTOR, NAMESPACE, tail=20))
        if errors:
            log.warn("Errors in logs:")
            log.echo("\n".join(errors))

    log.info("Waiting for conditions to propagate to nodes...")
    time.sleep(15)

    log.section("node-problem-detector installed!")
    show_node_conditions(kubectl)
    show_recent_events(kubectl)

    log.echo("Useful commands:")
    log.echo(
        "  kubectl get nodes -o custom-columns='NAME:.metadata.name,"
        "KERNEL_DEADLOCK:.status.conditions[?(@.type==\"KernelDeadlock\")].status'"
    )
    log.echo("  kubectl describe node <node-name> | grep -A5 Conditions")
    log.echo(f"  kubectl logs -n {NAMESPACE} -l {SELECTOR}")
    return True
