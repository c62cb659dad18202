"""Kernel modules, sysctl and swap settings required by Kubernetes."""

from pathlib import Path
from typing import Dict, List

from hetzkube.log import log
from hetzkube.system import shell

KERNEL_MODULES = ["overlay", "br_netfilter", "8021q"]

SYSCTL_SETTINGS = {
    "net.ipv4.ip_forward": "1",
    "net.ipv6.conf.all.forwarding": "1",
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.bridge.bridge-nf-call-ip6tables": "1",
}

MODULES_LOAD_FILE = Path("/etc/modules-load.d/k8s.conf")
SYSCTL_FILE = Path("/etc/sysctl.d/k8s.conf")
FSTAB = Path("/etc/fstab")
SYS_MODULE_DIR = Path("/sys/module")


def comment_swap_entries(fstab: str) -> str:
    """Comment out active swap lines in fstab content."""
    lines = []
    for line in fstab.splitlines(keepends=True):
        if " swap " in line and not line.lstrip().startswith("#"):
            line = "#" + line
        lines.append(line)
    return "".join(lines)


def load_kernel_modules() -> None:
    log.info("Configuring kernel modules...")
    for module in KERNEL_MODULES:
        shell.run_command(["modprobe", module])
    shell.write_root_file(MODULES_LOAD_FILE, "\n".join(KERNEL_MODULES) + "\n")


def apply_sysctl() -> None:
    log.info("Configuring sysctl parameters...")
    content = "".join(f"{key} = {value}\n" for key, value in SYSCTL_SETTINGS.items())
    shell.write_root_file(SYSCTL_FILE, content)
    shell.run_command(["sysctl", "--system"])


def disable_swap(fstab: Path = FSTAB) -> None:
    log.info("Disabling swap...")
    shell.run_command(["swapoff", "-a"])
    if fstab.exists():
        original = fstab.read_text()
        updated = comment_swap_entries(original)
        if updated != original:
            fstab.write_text(updated)
            log.ok(f"Swap entries commented out in {fstab}")


def loaded_modules() -> List[str]:
    """Required modules that are loaded, or built into the kernel (absent from lsmod)."""
    result = shell.run_command(["lsmod"], check=False)
    names = {line.split()[0] for line in (result.stdout or "").splitlines()[1:] if line.strip()}
    return [m for m in KERNEL_MODULES if m in names or (SYS_MODULE_DIR / m).is_dir()]


def current_sysctl() -> Dict[str, str]:
    values = {}
    for key in ("net.ipv4.ip_forward", "net.bridge.bridge-nf-call-iptables"):
        result = shell.run_command(["sysctl", "-n", key], check=False)
        values[key] = (result.stdout or "").strip() or "?"
    return values


def init_network() -> bool:
    """Prepare kernel networking for Kubernetes. Returns True when verified."""
    load_kernel_modules()
    apply_sysctl()
    disable_swap(FSTAB)

    log.echo()
    log.echo("Verifying network configuration:")
    values = current_sysctl()
    for key, value in values.items():
        log.echo(f"  {key} = {value}")

    modules = loaded_modules()
    log.echo(f"Loaded modules: {', '.join(modules) or 'none'}")

    missing = [m for m in KERNEL_MODULES if m not in modules]
    if missing:
        log.warn(f"Kernel modules not loaded: {', '.join(missing)}")
    if any(v != "1" for v in values.values()):
        log.warn("sysctl values are not all set to 1")

    ok = not missing and all(v == "1" for v in values.values())
    if ok:
        log.ok("Network initialization complete!")
    return ok
