"""Kubelet and API server certificate inspection via openssl."""

import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from hetzkube.log import log
from hetzkube.system import shell

KUBELET_PKI = Path("/var/lib/kubelet/pki")
KUBELET_CERT = KUBELET_PKI / "kubelet.crt"
APISERVER_CERT = Path("/etc/kubernetes/pki/apiserver.crt")

# 30 days
EXPIRY_WINDOW = 2592000


@dataclass
class CertInfo:
    path: Path
    not_after: Optional[str]
    subject: Optional[str]
    sans_text: str
    expiring: bool


def _field(pattern: str, text: str) -> Optional[str]:
    match = re.search(pattern, text)
    return match.group(1).strip() if match else None


def inspect(path: Path) -> Optional[CertInfo]:
    """Dates, subject and SANs of a certificate; None if openssl cannot read it."""
    result = shell.run_command(
        ["openssl", "x509", "-in", str(path), "-noout", "-dates", "-subject", "-ext", "subjectAltName"],
        check=False,
    )
    text = shell.output(result)
    if result.returncode != 0:
        log.warn(f"Cannot read {path}: {text.strip()}")
        return None

    checkend = shell.run_command(
        ["openssl", "x509", "-in", str(path), "-noout", "-checkend", str(EXPIRY_WINDOW)],
        check=False,
    )
    return CertInfo(
        path=path,
        not_after=_field(r"notAfter=(.+)", text),
        subject=_field(r"subject=(.+)", text),
        sans_text=text,
        expiring=checkend.returncode != 0,
    )


def check_kubelet_cert(vlan_ip: Optional[str] = None, cert: Path = KUBELET_CERT) -> int:
    """Number of issues with the local kubelet serving certificate."""
    log.info("Checking kubelet certificates...")
    if not cert.exists():
        log.warn(f"Kubelet cert not found at {cert}")
        return 1

    info = inspect(cert)
    if info is None:
        return 1

    issues = 0
    if info.not_after:
        log.ok(f"Local kubelet cert expires: {info.not_after}")
    if info.expiring:
        log.warn("Local kubelet cert expires within 30 days")
        issues += 1
    if vlan_ip and vlan_ip not in info.sans_text:
        log.warn(f"Kubelet cert may not include vSwitch IP ({vlan_ip}) in SANs")
        issues += 1
    return issues


def check_apiserver_cert(cert: Path = APISERVER_CERT) -> int:
    log.info("Checking API server certificate...")
    if not cert.exists():
        log.warn("API server cert not found")
        return 1

    info = inspect(cert)
    if info is None:
        return 1
    if info.not_after:
        log.ok(f"API server cert expires: {info.not_after}")
    if info.expiring:
        log.warn("API server cert expires within 30 days")
        return 1
    return 0


def regenerate_kubelet_certs(pki: Path = KUBELET_PKI) -> bool:
    """Remove kubelet certs and restart kubelet so it issues new ones."""
    log.info("Attempting to regenerate kubelet certificates...")

    backup = pki.with_name(f"pki.backup.{time.strftime('%Y%m%d%H%M%S')}")
    if pki.exists():
        shutil.copytree(pki, backup)
        log.info(f"Backed up certs to {backup}")

    for name in ("kubelet-client-current.pem", "kubelet.crt", "kubelet.key"):
        (pki / name).unlink(missing_ok=True)

    log.info("Restarting kubelet to regenerate certificates...")
    result = shell.run_command(["systemctl", "restart", "kubelet"], check=False)
    if result.returncode != 0:
        log.error(f"Failed to restart kubelet: {shell.output(result).strip()}")
        return False
    time.sleep(10)

    active = shell.run_command(["systemctl", "is-active", "kubelet"], check=False)
    if (active.stdout or "").strip() == "active":
        log.ok("Kubelet restarted successfully")
        return True
    log.error("Kubelet failed to start after cert regeneration")
    return False
