"""etcdctl wrapper using the kubeadm-generated etcd certificates"""

import subprocess
from pathlib import Path
from typing import List, Sequence

from hetzkube.log import log
from hetzkube.system import shell

ETCDCTL_ENV = {"ETCDCTL_API": "3"}

INSTALL_HINTS = [
    "To install etcdctl on Ubuntu, run:",
    "  sudo apt-get update && sudo apt-get install -y etcd-client",
    "Or download from GitHub releases:",
    "  ETCD_VERSION=v3.5.12",
    "  curl -fsSL https://github.com/etcd-io/etcd/releases/download/${ETCD_VERSION}/"
    "etcd-${ETCD_VERSION}-linux-amd64.tar.gz | \\",
    "    sudo tar -xzf - -C /usr/local/bin --strip-components=1 etcd-${ETCD_VERSION}-linux-amd64/etcdctl",
]


def require_etcdctl() -> str:
    """Version line of the installed etcdctl"""
    log.info("Checking if etcdctl is installed...")
    shell.require_command("etcdctl", INSTALL_HINTS + ["After installing etcdctl, run this command again."])
    result = shell.run_command(["etcdctl", "version"], check=False, env=ETCDCTL_ENV)
    lines = (result.stdout or "").splitlines()
    version = lines[0] if lines else "unknown"
    log.ok(f"etcdctl is installed: {version}")
    return version


class Etcdctl:
    """etcdctl client bound to one endpoint and certificate directory"""

    def __init__(self, endpoint: str, cert_dir: Path):
        self.endpoint = endpoint
        self.cert_dir = Path(cert_dir)

    def _tls_args(self) -> List[str]:
        return [
            f"--endpoints={self.endpoint}",
            f"--cacert={self.cert_dir / 'ca.crt'}",
            f"--cert={self.cert_dir / 'server.crt'}",
            f"--key={self.cert_dir / 'server.key'}",
        ]

    def run(self, args: Sequence[str], check: bool = False, capture: bool = True) -> subprocess.CompletedProcess:
        return shell.run_command(
            ["etcdctl"] + self._tls_args() + list(args),
            check=check,
            capture=capture,
            env=ETCDCTL_ENV,
        )

    def endpoint_health(self) -> bool:
        result = self.run(["endpoint", "health"])
        return "is healthy" in shell.output(result)

    def snapshot_save(self, path: Path) -> None:
        self.run(["snapshot", "save", str(path)], check=True)

    @staticmethod
    def snapshot_status(path: Path) -> subprocess.CompletedProcess:
        """Offline integrity check; needs no endpoint or certificates"""
        return shell.run_command(
            ["etcdctl", "snapshot", "status", str(path), "--write-out=table"],
            check=False,
            env=ETCDCTL_ENV,
        )

    @staticmethod
    def snapshot_restore(
        path: Path,
        data_dir: str,
        name: str,
        initial_cluster: str,
        peer_url: str = "https://127.0.0.1:2380",
    ) -> subprocess.CompletedProcess:
        return shell.run_command(
            [
                "etcdctl", "snapshot", "restore", str(path),
                f"--data-dir={data_dir}",
                f"--name={name}",
                f"--initial-cluster={initial_cluster}",
                f"--initial-advertise-peer-urls={peer_url}",
                "--skip-hash-check=true",
            ],
            check=False,
            env=ETCDCTL_ENV,
        )
