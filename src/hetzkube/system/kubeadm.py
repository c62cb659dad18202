"""Control plane initialisation and node joins via kubeadm."""

import os
import pwd
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from hetzkube.errors import CommandError, HetzkubeError, PreflightError, ValidationError
from hetzkube.log import log
from hetzkube.system import connectivity, firewall, netaddr, shell, vswitch

CALICO_URL = "https://raw.githubusercontent.com/projectcalico/calico/{version}/manifests/calico.yaml"
CALICO_MANIFEST = Path("/tmp/calico.yaml")


@dataclass
class JoinRequest:
    """Arguments for ``kubeadm join``.

    A ``certificate_key`` makes this a control-plane join.
    """

    control_plane_ip: str
    token: str
    ca_cert_hash: str
    node_name: str
    api_port: int = 6443
    certificate_key: Optional[str] = None
    advertise_address: Optional[str] = None

    @property
    def control_plane(self) -> bool:
        return self.certificate_key is not None

    @property
    def endpoint(self) -> str:
        return f"{self.control_plane_ip}:{self.api_port}"

    def command(self) -> List[str]:
        cmd = [
            "kubeadm", "join", self.endpoint,
            "--token", self.token,
            "--discovery-token-ca-cert-hash", self.ca_cert_hash,
        ]
        if self.control_plane:
            cmd += ["--control-plane", "--certificate-key", self.certificate_key]
            if self.advertise_address:
                cmd.append(f"--apiserver-advertise-address={self.advertise_address}")
        cmd += ["--node-name", self.node_name]
        return cmd

    def redacted(self) -> str:
        """Command line safe to print: secrets replaced by placeholders."""
        secrets = {
            self.token: "<token>",
            self.ca_cert_hash: "<hash>",
            self.certificate_key: "<certificate-key>",
        }
        return " ".join(secrets.get(part, part) for part in self.command())


def init_command(ip: str, hostname: str, pod_network_cidr: str) -> List[str]:
    return [
        "kubeadm", "init",
        f"--pod-network-cidr={pod_network_cidr}",
        f"--apiserver-advertise-address={ip}",
        f"--control-plane-endpoint={hostname}",
        f"--apiserver-cert-extra-sans={hostname},{ip}",
    ]


def setup_user_kubeconfig(admin_conf: str) -> Path:
    """Copy admin.conf to the invoking user's ~/.kube/config."""
    user, home = shell.sudo_user_home()
    kube_dir = home / ".kube"
    target = kube_dir / "config"
    kube_dir.mkdir(parents=True, exist_ok=True)

    if target.exists():
        backup = target.with_name("config.bak")
        shutil.copyfile(target, backup)
        log.info(f"Existing kubeconfig saved to {backup}")

    shutil.copyfile(admin_conf, target)
    try:
        entry = pwd.getpwnam(user)
        os.chown(kube_dir, entry.pw_uid, entry.pw_gid)
        os.chown(target, entry.pw_uid, entry.pw_gid)
    except KeyError:
        log.warn(f"Unknown user {user}; leaving {target} owned by root")

    log.ok(f"kubectl configured for {user} ({target})")
    return target


def download_calico(version: str, dest: Optional[Path] = None) -> Path:
    dest = dest or CALICO_MANIFEST
    url = CALICO_URL.format(version=version)
    try:
        response = httpx.get(url, timeout=60, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise HetzkubeError(f"Failed to download Calico manifest: {e}", [url])
    dest.write_text(response.text)
    return dest


def install_calico(version: str, interface: str, user: str) -> None:
    log.info("Installing Calico CNI...")
    manifest = download_calico(version)
    shell.run_as_user(user, ["kubectl", "apply", "-f", str(manifest)])

    log.info("Waiting for Calico to initialize...")
    time.sleep(10)

    shell.run_as_user(
        user,
        [
            "kubectl", "set", "env", "daemonset/calico-node", "-n", "kube-system",
            f"IP_AUTODETECTION_METHOD=interface={interface}",
        ],
    )
    log.ok(f"Calico configured to use {interface}")


def init_control_plane(config: Dict[str, Any], hostname: Optional[str] = None) -> Tuple[str, int]:
    """Initialise the first control plane on the vSwitch address."""
    shell.require_root()
    cluster = config["cluster"]
    interface = config["vswitch"]["interface"]

    hostname = hostname or shell.hostname()
    log.info(f"Using hostname: {hostname}")

    ip, prefix = vswitch.vlan_address(interface)
    log.info(f"Detected vSwitch IP: {ip}/{prefix} on {interface}")
    log.info("Initializing Kubernetes control plane (this may take several minutes)...")

    try:
        shell.run_command(init_command(ip, hostname, cluster["pod_network_cidr"]), capture=False)
    except CommandError as e:
        e.message = "kubeadm init failed!"
        e.hints.append("Inspect the output above, then run 'kubeadm reset' before retrying")
        raise

    user, _ = shell.sudo_user_home()
    setup_user_kubeconfig(cluster["admin_kubeconfig"])
    install_calico(config["versions"]["calico"], interface, user)
    firewall.open_vswitch(interface)

    log.info("Waiting for node to be Ready...")
    time.sleep(30)
    nodes = shell.run_as_user(user, ["kubectl", "get", "nodes"], check=False)
    log.echo((nodes.stdout or "").rstrip())

    log.section("Control Plane Initialization Complete!")
    log.echo("To add worker nodes, get the join command on this control plane:")
    log.echo("  kubeadm token create --print-join-command")
    log.echo()
    log.echo("To check cluster status:")
    log.echo("  kubectl get nodes")
    log.echo("  kubectl get pods -A")
    log.echo()
    log.echo("For a single-node cluster (run workloads on control plane):")
    log.echo("  kubectl taint nodes --all node-role.kubernetes.io/control-plane:NoSchedule-")
    return ip, prefix


def validate_same_subnet(
    local_ip: str, prefix: int, remote_ip: str, interface: str, remote_label: str = "Control plane"
) -> str:
    """Fail unless ``remote_ip`` is inside the local vSwitch subnet."""
    local_net = netaddr.network_address(local_ip, prefix)
    remote_net = netaddr.network_address(remote_ip, prefix)
    log.echo(f"  This node's network:  {local_net}/{prefix}")
    log.echo(f"  {remote_label} network: {remote_net}/{prefix}")

    if not netaddr.same_subnet(local_ip, prefix, remote_ip):
        raise ValidationError(
            f"{remote_label} IP {remote_ip} is NOT in the same subnet!",
            [
                f"This node is on network:  {local_net}/{prefix}",
                f"{remote_label} appears to be: {remote_net}/{prefix}",
                "Both nodes must be in the same Hetzner vSwitch subnet.",
                f"Check that the {remote_label.lower()} has {interface} configured with an IP in {local_net}/{prefix}",
                "Check that both servers are added to the same vSwitch in the Hetzner Robot panel",
            ],
        )
    log.ok(f"Subnet validation: both in {local_net}/{prefix}")
    return local_net


def check_connectivity(remote_ip: str, interface: str, ports: Sequence[Tuple[str, int, List[str]]]) -> None:
    """Ping ``remote_ip`` then connect to each (label, port, hints) entry."""
    if connectivity.ping(remote_ip):
        log.ok(f"Ping {remote_ip}")
    else:
        raise PreflightError(
            f"Cannot ping control plane at {remote_ip}",
            [
                "Check that the control plane server is running",
                f"Check that the control plane has {interface} configured",
                "Check that both servers are in the same Hetzner vSwitch",
                "Check that the firewall allows vSwitch traffic",
            ],
        )

    for label, port, hints in ports:
        if connectivity.tcp_open(remote_ip, port):
            log.ok(f"{label} (port {port})")
        else:
            raise PreflightError(f"Cannot reach {label} at {remote_ip}:{port}", hints)


def _preflight_join(config: Dict[str, Any], control_plane_ip: str, etcd: bool) -> Tuple[str, int, str]:
    interface = config["vswitch"]["interface"]
    cluster = config["cluster"]

    log.step(1, 5, f"Checking this node's {interface} interface...")
    local_ip, prefix = vswitch.vlan_address(interface)
    log.echo(f"  This node's {interface} IP: {local_ip}/{prefix}")

    log.step(2, 5, "Validating control plane IP format...")
    remote_ip = netaddr.parse_ipv4(control_plane_ip, "control plane IP")
    log.ok("Control plane IP format")

    log.step(3, 5, "Validating both nodes are in the same vSwitch subnet...")
    validate_same_subnet(local_ip, prefix, remote_ip, interface)

    log.step(4, 5, "Testing connectivity to control plane...")
    ports = [
        (
            "API server",
            int(cluster["api_port"]),
            [
                "Check that the Kubernetes control plane is initialized",
                "Check the API server is running: kubectl get pods -n kube-system",
                f"Check that the firewall allows port {cluster['api_port']}",
            ],
        )
    ]
    if etcd:
        ports.append(
            (
                "etcd",
                int(cluster["etcd_client_port"]),
                ["Ensure the firewall allows etcd traffic between control planes"],
            )
        )
    check_connectivity(remote_ip, interface, ports)
    return local_ip, prefix, remote_ip


def _run_join(request: JoinRequest) -> None:
    log.echo(f"Executing: {request.redacted()}")
    try:
        shell.run_command(request.command(), capture=False)
    except CommandError as e:
        e.message = "kubeadm join failed!"
        e.cmd = request.redacted().split()
        e.hints.append("Tokens expire after 24h; create a new one with: kubeadm token create --print-join-command")
        raise


def join_worker(
    config: Dict[str, Any],
    control_plane_ip: str,
    token: str,
    ca_cert_hash: str,
    node_name: Optional[str] = None,
) -> JoinRequest:
    """Join this node to the cluster as a worker."""
    shell.require_root()
    node_name = node_name or shell.hostname()

    log.section("Kubernetes Worker Node Join")
    log.echo(f"Control Plane IP: {control_plane_ip}")
    log.echo(f"Worker Hostname:  {node_name}")

    _, _, remote_ip = _preflight_join(config, control_plane_ip, etcd=False)

    log.step(5, 5, "Joining cluster...")
    request = JoinRequest(
        control_plane_ip=remote_ip,
        token=token,
        ca_cert_hash=ca_cert_hash,
        node_name=node_name,
        api_port=int(config["cluster"]["api_port"]),
    )
    _run_join(request)

    log.section("Worker Node Joined Successfully!")
    log.echo(f"This node ({node_name}) has joined the cluster.")
    log.echo("Verify from control plane:")
    log.echo("  kubectl get nodes")
    log.echo("The node may take a minute to show as Ready while Calico initializes.")
    return request


def join_control_plane(
    config: Dict[str, Any],
    control_plane_ip: str,
    token: str,
    ca_cert_hash: str,
    certificate_key: str,
    node_name: Optional[str] = None,
) -> JoinRequest:
    """Join this node as an additional control plane."""
    shell.require_root()
    node_name = node_name or shell.hostname()
    interface = config["vswitch"]["interface"]

    log.section("Additional Control Plane Join")
    log.echo(f"Existing Control Plane IP: {control_plane_ip}")
    log.echo(f"New Control Plane Hostname: {node_name}")

    local_ip, _, remote_ip = _preflight_join(config, control_plane_ip, etcd=True)

    log.step(5, 5, "Joining as additional control plane...")
    log.echo(f"  Advertise API server on: {local_ip}")
    log.echo(f"  Certificate SANs: {node_name}, {local_ip}")
    request = JoinRequest(
        control_plane_ip=remote_ip,
        token=token,
        ca_cert_hash=ca_cert_hash,
        node_name=node_name,
        api_port=int(config["cluster"]["api_port"]),
        certificate_key=certificate_key,
        advertise_address=local_ip,
    )
    _run_join(request)

    log.info("Setting up kubectl for current user...")
    setup_user_kubeconfig(config["cluster"]["admin_kubeconfig"])
    firewall.open_vswitch(interface)

    log.section("Additional Control Plane Joined!")
    log.echo(f"This node ({node_name}) is now a control plane.")
    log.echo(f"API server advertised on: {local_ip}")
    log.echo("Verify cluster status:")
    log.echo("  kubectl get nodes")
    return request
