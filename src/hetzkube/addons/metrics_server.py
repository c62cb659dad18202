"""metrics-server installation with node, certificate and TLS validation.

Checks cluster health, kubelet/API server certificates and kubelet
reachability before (re)installing metrics-server. A working install is left
alone unless ``force`` is set.
"""

import enum
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from rich.table import Table

from hetzkube.addons import poll, render_manifest, require_control_plane
from hetzkube.errors import HetzkubeError, PreflightError
from hetzkube.log import console, log
from hetzkube.system import certs, connectivity, shell, vswitch
from hetzkube.system.kubectl import Kubectl

NAMESPACE = "kube-system"
SELECTOR = "k8s-app=metrics-server"

NODES_JSONPATH = (
    '{range .items[*]}{.metadata.name}|'
    '{.status.addresses[?(@.type=="InternalIP")].address}|'
    '{.status.conditions[?(@.type=="Ready")].status}{"\\n"}{end}'
)

DNS1123_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$", re.IGNORECASE)
IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")

ISSUE_PATTERNS = {
    "tls_verify": re.compile(r"x509|certificate|tls", re.IGNORECASE),
    "kubelet_connect": re.compile(r"dial tcp|connection refused|no route", re.IGNORECASE),
    "resolve": re.compile(r"no such host|lookup.*failed", re.IGNORECASE),
    "auth": re.compile(r"Unauthorized|forbidden", re.IGNORECASE),
}
ISSUE_MESSAGES = {
    "tls_verify": "Detected TLS/certificate verification issues",
    "kubelet_connect": "Detected kubelet connectivity issues",
    "resolve": "Detected DNS resolution issues",
    "auth": "Detected authentication issues",
}


class MetricsState(enum.Enum):
    WORKING = "working"
    UNAVAILABLE = "unavailable"
    TLS_ERROR = "tls_error"


@dataclass
class Node:
    name: str
    ip: str
    ready: bool

    @property
    def problems(self) -> List[str]:
        problems = []
        if not self.ready:
            problems.append("NotReady")
        if not IPV4_RE.match(self.ip):
            problems.append(f"invalid IP: {self.ip or '-'}")
        if not DNS1123_RE.match(self.name):
            problems.append("invalid hostname format")
        return problems


def parse_nodes(output: str) -> List[Node]:
    nodes = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = (line.split("|") + ["", ""])[:3]
        name, ip, ready = (p.strip() for p in parts)
        nodes.append(Node(name=name, ip=ip, ready=ready == "True"))
    return nodes


def get_nodes(kubectl: Kubectl) -> List[Node]:
    out = kubectl.jsonpath(["nodes"], NODES_JSONPATH)
    if out is None:
        raise HetzkubeError("Failed to get nodes")
    return parse_nodes(out)


def check_nodes(kubectl: Kubectl) -> Tuple[bool, List[Node]]:
    log.info("Checking cluster nodes...")
    nodes = get_nodes(kubectl)
    if not nodes:
        raise PreflightError("No nodes found in cluster")

    table = Table(title="Cluster Nodes")
    table.add_column("Name", style="cyan")
    table.add_column("InternalIP")
    table.add_column("Status")
    all_ok = True
    for node in nodes:
        problems = node.problems
        status = "[green]Ready[/green]" if not problems else f"[yellow]{', '.join(problems)}[/yellow]"
        table.add_row(node.name, node.ip, status)
        all_ok = all_ok and not problems
    console.print(table)
    return all_ok, nodes


def check_kubelet_connectivity(nodes: List[Node]) -> int:
    log.info("Testing kubelet connectivity from control plane...")
    issues = 0
    for node in nodes:
        if connectivity.kubelet_reachable(node.ip):
            log.ok(f"Kubelet on {node.name} ({node.ip}:10250) reachable")
        else:
            log.warn(f"Cannot reach kubelet on {node.name} ({node.ip}:10250)")
            issues += 1
    return issues


def ready_replicas(kubectl: Kubectl) -> int:
    out = kubectl.jsonpath(["deployment", "metrics-server"], "{.status.readyReplicas}", NAMESPACE)
    return int(out) if out and out.isdigit() else 0


def check_exists(kubectl: Kubectl) -> Tuple[bool, int]:
    log.info("Checking if metrics-server is installed...")
    replicas = ready_replicas(kubectl)
    if replicas > 0:
        log.ok(f"metrics-server deployment exists with {replicas} ready replicas")
        return True, replicas
    if kubectl.exists("deployment", "metrics-server", NAMESPACE):
        log.warn("metrics-server exists but has no ready replicas")
        return True, 0
    log.info("metrics-server not installed")
    return False, 0


def classify_top_output(returncode: int, out: str) -> MetricsState:
    if returncode == 0 and re.search(r"CPU.*MEMORY", out, re.IGNORECASE):
        return MetricsState.WORKING
    if re.search(r"tls|certificate|x509", out, re.IGNORECASE) and not re.search(
        r"Metrics API not available|metrics\.k8s\.io.*not found", out, re.IGNORECASE
    ):
        return MetricsState.TLS_ERROR
    return MetricsState.UNAVAILABLE


def check_metrics_api(kubectl: Kubectl) -> MetricsState:
    log.info("Testing metrics API...")
    result = kubectl.run(["top", "nodes"])
    out = shell.output(result)
    state = classify_top_output(result.returncode, out)
    if state is MetricsState.WORKING:
        log.ok("kubectl top nodes works")
    elif state is MetricsState.TLS_ERROR:
        log.warn(f"Metrics API has TLS issues: {out.strip()}")
    else:
        log.info("Metrics API not available")
    return state


def detect_issues(logs: str) -> Dict[str, bool]:
    return {name: bool(pattern.search(logs)) for name, pattern in ISSUE_PATTERNS.items()}


def diagnose(kubectl: Kubectl) -> Dict[str, bool]:
    log.info("Diagnosing metrics-server issues...")
    logs = kubectl.logs(SELECTOR, NAMESPACE, tail=50)
    issues = detect_issues(logs)
    for name, found in issues.items():
        if found:
            log.warn(ISSUE_MESSAGES[name])
    if issues["tls_verify"]:
        log.info(f"Logs snippet: {logs[:500]}")
    return issues


def delete(kubectl: Kubectl) -> None:
    log.info("Removing existing metrics-server...")
    kubectl.delete("deployment", ["metrics-server"], NAMESPACE)
    kubectl.delete("service", ["metrics-server"], NAMESPACE)
    kubectl.delete("apiservice", ["v1beta1.metrics.k8s.io"])
    kubectl.delete("clusterrole", ["system:metrics-server", "system:aggregated-metrics-reader"])
    kubectl.delete("clusterrolebinding", ["system:metrics-server", "metrics-server:system:auth-delegator"])
    kubectl.delete("rolebinding", ["metrics-server-auth-reader"], NAMESPACE)
    kubectl.delete("serviceaccount", ["metrics-server"], NAMESPACE)
    time.sleep(5)


def apply(kubectl: Kubectl, version: str) -> None:
    log.info("Installing metrics-server...")
    result = kubectl.apply_manifest(render_manifest("metrics-server", version=version))
    if result.returncode != 0:
        raise HetzkubeError(f"Failed to apply metrics-server manifest: {shell.output(result).strip()}")
    log.ok("metrics-server manifest applied")


def wait_ready(kubectl: Kubectl, timeout: int = 120) -> bool:
    replicas = poll("Waiting for metrics-server to be ready", lambda: ready_replicas(kubectl), timeout)
    if replicas:
        log.ok(f"metrics-server ready with {replicas} replicas")
        return True
    log.warn(f"metrics-server did not become ready within {timeout}s")
    return False


def wait_api(kubectl: Kubectl, timeout: int = 60) -> bool:
    def top_nodes():
        result = kubectl.run(["top", "nodes"])
        if classify_top_output(result.returncode, shell.output(result)) is MetricsState.WORKING:
            return result.stdout or True
        return None

    out = poll("Waiting for metrics API to respond", top_nodes, timeout)
    if out:
        log.ok("Metrics API working")
        if isinstance(out, str):
            log.echo(out.rstrip())
        return True
    return False


def check_coredns(kubectl: Kubectl) -> None:
    log.info("Checking CoreDNS configuration for node hostname resolution...")
    if kubectl.exists("configmap", "coredns", NAMESPACE):
        log.ok("CoreDNS configmap exists")
    else:
        log.warn("Cannot get CoreDNS configmap")


def local_vlan_ip(interface: str) -> str:
    try:
        return vswitch.vlan_address(interface)[0]
    except PreflightError:
        return ""


def install(config: Dict[str, Any], force: bool, confirm: Callable[[str], bool]) -> bool:
    """Install or repair metrics-server. Returns False when nothing was done."""
    shell.require_root()
    log.ok("Running as root")
    kubectl = require_control_plane(config["cluster"]["admin_kubeconfig"])
    log.ok(f"Running on control plane node: {shell.hostname()}")
    version = config["versions"]["metrics_server"]

    nodes_ok, nodes = check_nodes(kubectl)
    if not nodes_ok and not force:
        raise PreflightError("Some nodes have issues. Use --force to continue anyway.")

    kubelet_issues = certs.check_kubelet_cert(local_vlan_ip(config["vswitch"]["interface"]) or None)
    apiserver_issues = certs.check_apiserver_cert()
    check_kubelet_connectivity(nodes)

    if kubelet_issues or apiserver_issues:
        log.warn("Certificate issues detected")
        if force:
            log.info("Continuing due to --force flag")
        elif kubelet_issues and confirm("Attempt to fix certificate issues?"):
            certs.regenerate_kubelet_certs()

    exists, _ = check_exists(kubectl)
    state = check_metrics_api(kubectl)

    if state is MetricsState.WORKING and not force:
        log.section("metrics-server is installed and working properly!")
        log.echo("Nothing to do. Use --force to reinstall anyway.")
        return False

    if exists and state is not MetricsState.WORKING:
        log.info("metrics-server exists but not working properly")
        issues = diagnose(kubectl)
        if issues["tls_verify"]:
            log.warn("TLS verification issues detected")
            if not confirm("Try to fix certificates (may require node restarts)?"):
                return False
            certs.regenerate_kubelet_certs()
            log.info("Certificates regenerated. Restarting metrics-server...")
            kubectl.run(["rollout", "restart", "deployment", "metrics-server", "-n", NAMESPACE])
            if wait_ready(kubectl, 120) and wait_api(kubectl, 60):
                log.ok("metrics-server fixed!")
                return True
            log.warn("Still having issues after certificate regeneration")

        delete(kubectl)

    check_coredns(kubectl)
    apply(kubectl, version)

    if not wait_ready(kubectl, 120):
        log.warn("metrics-server deployment not ready, checking logs...")
        if diagnose(kubectl)["tls_verify"]:
            log.warn("TLS issues detected. Try regenerating certificates on all nodes.")
            log.info("Run: sudo hetzkube addons metrics-server --force")

    if not wait_api(kubectl, 90):
        raise HetzkubeError(
            "metrics-server installed but metrics API not responding",
            [f"Check logs: kubectl logs -n {NAMESPACE} -l {SELECTOR}"],
        )

    log.section("metrics-server installed and working!")
    log.echo("You can now use:")
    log.echo("  kubectl top nodes")
    log.echo("  kubectl top pods")
    return True
