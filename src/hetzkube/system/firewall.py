"""iptables rules for vSwitch traffic."""

from typing import List

from hetzkube.log import log
from hetzkube.system import shell


def interface_rules(interface: str) -> List[List[str]]:
    return [
        ["iptables", "-I", "INPUT", "-i", interface, "-j", "ACCEPT"],
        ["iptables", "-I", "OUTPUT", "-o", interface, "-j", "ACCEPT"],
        ["iptables", "-I", "FORWARD", "-i", interface, "-j", "ACCEPT"],
        ["iptables", "-I", "FORWARD", "-o", interface, "-j", "ACCEPT"],
    ]


def allow_interface(interface: str) -> None:
    """Accept all traffic through the vSwitch interface."""
    log.info(f"Configuring firewall for {interface} traffic...")
    for rule in interface_rules(interface):
        shell.run_command(rule)


def persist() -> None:
    shell.run_command(
        ["apt-get", "install", "-y", "iptables-persistent"],
        env={"DEBIAN_FRONTEND": "noninteractive"},
        capture=False,
    )
    shell.run_command(["netfilter-persistent", "save"])
    log.ok("Firewall rules saved")


def open_vswitch(interface: str) -> None:
    allow_interface(interface)
    persist()
