"""IPv4 parsing and vSwitch subnet arithmetic."""

import ipaddress
import re
from typing import Optional, Tuple

from hetzkube.errors import ValidationError

IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
CIDR_RE = re.compile(r"^((?:\d{1,3}\.){3}\d{1,3})/(\d{1,2})$")


def parse_ipv4(text: str, label: str = "IP address") -> str:
    """Validate a dotted-quad IPv4 address and return it normalised."""
    text = (text or "").strip()
    if not IPV4_RE.match(text):
        raise ValidationError(
            f"Invalid {label} format: {text}",
            ["Expected format: x.x.x.x (e.g., 10.0.0.10)"],
        )
    octets = [int(o) for o in text.split(".")]
    for octet in octets:
        if octet > 255:
            raise ValidationError(f"Invalid {label} {text} (octet {octet} out of range)")
    return ".".join(str(o) for o in octets)


def parse_cidr(text: str, default_prefix: Optional[int] = None) -> Tuple[str, int]:
    """Split ``x.x.x.x/n`` into (ip, prefix).

    A bare address is accepted when ``default_prefix`` is given.
    """
    text = (text or "").strip()
    match = CIDR_RE.match(text)
    if match:
        ip, prefix = match.group(1), int(match.group(2))
    elif default_prefix is not None and IPV4_RE.match(text):
        ip, prefix = text, default_prefix
    else:
        raise ValidationError(
            f"Invalid IP address format: {text}",
            ["Expected format: x.x.x.x/mask (e.g., 10.0.0.10/24)"],
        )

    if prefix < 0 or prefix > 32:
        raise ValidationError("Subnet mask must be between 0 and 32")

    return parse_ipv4(ip), prefix


def ip_to_int(ip: str) -> int:
    return int(ipaddress.IPv4Address(parse_ipv4(ip)))


def int_to_ip(value: int) -> str:
    return str(ipaddress.IPv4Address(value & 0xFFFFFFFF))


def netmask(prefix: int) -> int:
    return (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF


def network_address(ip: str, prefix: int) -> str:
    return int_to_ip(ip_to_int(ip) & netmask(prefix))


def same_subnet(local_ip: str, prefix: int, remote_ip: str) -> bool:
    """True when ``remote_ip`` falls inside the local node's vSwitch subnet.

    Both sides are masked with the local prefix.
    """
    mask = netmask(prefix)
    return (ip_to_int(local_ip) & mask) == (ip_to_int(remote_ip) & mask)


def suggest_ping_target(ip: str) -> str:
    """Another vSwitch node worth pinging after configuring ``ip``."""
    if ip == "10.0.0.10":
        return "10.0.0.11"
    if ip.startswith("10.0.0."):
        return "10.0.0.10"
    return "<other-vswitch-node-ip>"
