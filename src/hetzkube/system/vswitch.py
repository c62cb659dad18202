"""Hetzner vSwitch VLAN interface configuration.

The address configured here is the node's address inside the private vSwitch
network, used for control plane and inter-node traffic (e.g. 10.0.0.10/24).
Pod IPs are managed separately by Calico (192.168.0.0/16 by default).
"""

import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from hetzkube.errors import PreflightError, ValidationError
from hetzkube.log import log
from hetzkube.system import netaddr, shell

ROUTE_DEV_RE = re.compile(r"\bdev\s+(\S+)")
LINK_RE = re.compile(r"^\d+:\s+((?:en|eth)[^:@\s]*)", re.MULTILINE)
INET_RE = re.compile(r"\binet\s+(\d+(?:\.\d+){3}/\d+)")

MODULES_FILE = Path("/etc/modules")

VLAN_MIN = 4000
VLAN_MAX = 4091

HETZNER_FIREWALL_NOTE = (
    "According to Hetzner https://docs.hetzner.com/robot/dedicated-server/network/vswitch/#firewall "
    "the servers' firewall is also applied to the packets of the vSwitches. If you have activated "
    "a firewall, you must also enable internal IP addresses in the firewall."
)


def parse_default_route_device(route_output: str) -> Optional[str]:
    match = ROUTE_DEV_RE.search(route_output)
    return match.group(1) if match else None


def parse_first_physical_link(link_output: str) -> Optional[str]:
    match = LINK_RE.search(link_output)
    return match.group(1) if match else None


def parse_inet(addr_output: str) -> Optional[str]:
    match = INET_RE.search(addr_output)
    return match.group(1) if match else None


def detect_physical_interface() -> str:
    """Primary physical NIC: default route device, else first en*/eth* link."""
    route = shell.run_command(["ip", "route", "show", "default"], check=False)
    iface = parse_default_route_device(route.stdout or "")

    if not iface:
        links = shell.run_command(["ip", "link", "show"], check=False)
        iface = parse_first_physical_link(links.stdout or "")
        if not iface:
            raise PreflightError(
                "Could not detect physical network interface",
                ["Available interfaces:"] + (links.stdout or "").splitlines(),
            )

    return iface


def check_vlan_id(vlan_id: Any) -> int:
    """Hetzner vSwitch VLAN IDs are 4000-4091."""
    try:
        value = int(vlan_id)
    except (TypeError, ValueError):
        value = -1
    if not VLAN_MIN <= value <= VLAN_MAX:
        raise ValidationError(
            f"Invalid vSwitch VLAN ID {vlan_id}: must be between {VLAN_MIN} and {VLAN_MAX}",
            ["Use the VLAN ID shown for the vSwitch in the Hetzner Robot panel"],
        )
    return value


def render_netplan(link: str, address: str, vlan_id: int, interface: str, mtu: int) -> str:
    doc: Dict[str, Any] = {
        "network": {
            "version": 2,
            "vlans": {
                interface: {
                    "id": int(vlan_id),
                    "link": link,
                    "addresses": [address],
                    "mtu": int(mtu),
                }
            },
        }
    }
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)


def vlan_address(interface: str = "vlan4000") -> Tuple[str, int]:
    """IP and prefix currently assigned to the vSwitch VLAN interface."""
    result = shell.run_command(["ip", "-4", "addr", "show", interface], check=False)
    cidr = parse_inet(result.stdout or "") if result.returncode == 0 else None
    if not cidr:
        raise PreflightError(
            f"{interface} interface not found or has no IP on this node!",
            ["Please run 'hetzkube vswitch init <IP/PREFIX>' first"],
        )
    return netaddr.parse_cidr(cidr)


def ensure_module_persisted(module: str = "8021q", modules_file: Path = MODULES_FILE) -> None:
    existing = modules_file.read_text().split() if modules_file.exists() else []
    if module not in existing:
        with open(modules_file, "a") as f:
            f.write(f"{module}\n")


def configure_vswitch(address: str, settings: Dict[str, Any]) -> Tuple[str, int]:
    """Create and apply the netplan VLAN config for ``address``.

    ``settings`` is the ``vswitch`` config section. Returns (ip, prefix).
    """
    ip, prefix = netaddr.parse_cidr(address, default_prefix=int(settings.get("default_prefix", 24)))
    interface = settings.get("interface", "vlan4000")
    vlan_id = check_vlan_id(settings.get("vlan_id", 4000))
    log.info(f"Using IP address: {ip} with subnet /{prefix}")

    link = detect_physical_interface()
    log.info(f"Detected physical interface: {link}")

    shell.run_command(["apt-get", "update"], capture=False)
    shell.run_command(["apt-get", "install", "-y", "vlan"], capture=False)

    shell.run_command(["modprobe", "8021q"])
    ensure_module_persisted("8021q", MODULES_FILE)

    netplan = render_netplan(
        link,
        f"{ip}/{prefix}",
        vlan_id,
        interface,
        settings.get("mtu", 1400),
    )
    netplan_file = Path(settings.get("netplan_file", "/etc/netplan/10-vswitch.yaml"))
    shell.write_root_file(netplan_file, netplan, mode=0o600)
    log.echo(netplan)

    log.info("Applying netplan configuration...")
    shell.run_command(["netplan", "apply"])

    log.echo()
    log.echo(f"Verifying {interface} interface:")
    shown = shell.run_command(["ip", "addr", "show", interface], check=False)
    log.echo((shown.stdout or "").rstrip())
    if shown.returncode != 0:
        log.warn(f"{interface} is not up yet")
    else:
        log.ok("VLAN interface configured successfully!")

    log.echo("To test connectivity, ping another node in the vSwitch:")
    log.echo(f"  ping {netaddr.suggest_ping_target(ip)}")
    log.echo(HETZNER_FIREWALL_NOTE)

    return ip, prefix
