"""Complete node setup: runs each preparation step in order."""

from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.table import Table

from hetzkube.errors import Cancelled
from hetzkube.log import console, log
from hetzkube.system import firewall, kubeadm, netaddr, network, packages, shell, vswitch

Step = Tuple[str, Callable[[], Any]]


def _common_steps(config: Dict[str, Any], address: str) -> List[Step]:
    versions = config["versions"]
    return [
        ("Configuring network", network.init_network),
        (
            "Installing Kubernetes tools and CRI-O",
            lambda: packages.install_kube_tools(versions["kubernetes"], versions["crio"]),
        ),
        ("Setting up vSwitch", lambda: vswitch.configure_vswitch(address, config["vswitch"])),
    ]


def control_plane_steps(config: Dict[str, Any], address: str, hostname: Optional[str] = None) -> List[Step]:
    return _common_steps(config, address) + [
        (
            "Initializing control plane and Calico CNI",
            lambda: kubeadm.init_control_plane(config, hostname),
        ),
    ]


def worker_steps(config: Dict[str, Any], address: str) -> List[Step]:
    return _common_steps(config, address) + [
        ("Configuring firewall", lambda: firewall.open_vswitch(config["vswitch"]["interface"])),
    ]


def plan_table(title: str, steps: List[Step]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Step", style="cyan")
    table.add_column("Description")
    total = len(steps)
    for number, (description, _) in enumerate(steps, 1):
        table.add_row(f"{number}/{total}", description)
    return table


def run_steps(steps: List[Step]) -> None:
    """Run steps in order; the first failure propagates."""
    total = len(steps)
    for number, (description, func) in enumerate(steps, 1):
        log.step(number, total, f"{description}...")
        func()


def setup_control_plane(
    config: Dict[str, Any],
    address: str,
    confirm: Callable[[str], bool],
    dry_run: bool = False,
    hostname: Optional[str] = None,
) -> bool:
    """Prepare this server and initialise it as the first control plane."""
    netaddr.parse_cidr(address, default_prefix=int(config["vswitch"]["default_prefix"]))
    steps = control_plane_steps(config, address, hostname)

    log.section("Kubernetes Control Plane Setup")
    log.echo(f"vSwitch IP: {address}")
    console.print(plan_table("This will run", steps))
    if dry_run:
        log.info("Dry run: nothing executed")
        return False

    shell.require_root()
    if not confirm("Continue?"):
        raise Cancelled("Setup cancelled", exit_code=1)

    run_steps(steps)

    log.section("Setup Complete!")
    log.echo("Your Kubernetes control plane is ready!")
    log.echo()
    log.echo("Next steps:")
    log.echo("1. Check cluster status:")
    log.echo("   kubectl get nodes")
    log.echo("   kubectl get pods -A")
    log.echo("2. To add worker nodes:")
    log.echo("   a) Run 'hetzkube setup worker <IP/PREFIX>' on the worker")
    log.echo("   b) Get the join command here: kubeadm token create --print-join-command")
    log.echo("   c) Run 'hetzkube worker join' on the worker")
    log.echo("3. For single-node cluster (optional):")
    log.echo("   kubectl taint nodes --all node-role.kubernetes.io/control-plane:NoSchedule-")
    return True


def setup_worker(config: Dict[str, Any], address: str, confirm: Callable[[str], bool], dry_run: bool = False) -> bool:
    """Prepare this server to be joined as a worker."""
    netaddr.parse_cidr(address, default_prefix=int(config["vswitch"]["default_prefix"]))
    steps = worker_steps(config, address)

    log.section("Kubernetes Worker Node Setup")
    log.echo(f"vSwitch IP: {address}")
    console.print(plan_table("This will run", steps))
    if dry_run:
        log.info("Dry run: nothing executed")
        return False

    shell.require_root()
    if not confirm("Continue?"):
        raise Cancelled("Setup cancelled", exit_code=1)

    run_steps(steps)

    log.section("Worker Node Setup Complete!")
    log.echo("Next step: Join this node to the cluster")
    log.echo("1. On the control plane node, get the join command:")
    log.echo("   kubeadm token create --print-join-command")
    log.echo("2. Use the join command (validates vSwitch subnet):")
    log.echo("   sudo hetzkube worker join <CONTROL_PLANE_IP> <TOKEN> <CA_HASH> [HOSTNAME]")
    log.echo("   Example:")
    log.echo("   sudo hetzkube worker join 10.0.0.10 abcdef.token sha256:hash worker-1")
    log.echo("3. Verify from control plane:")
    log.echo("   kubectl get nodes")
    return True
