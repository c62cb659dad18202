"""Kubernetes tools and CRI-O installation from upstream apt repositories."""

from dataclasses import dataclass
from pathlib import Path
from typing import List

import httpx

from hetzkube.errors import CommandError, HetzkubeError
from hetzkube.log import log
from hetzkube.system import shell

KEYRING_DIR = Path("/etc/apt/keyrings")
SOURCES_DIR = Path("/etc/apt/sources.list.d")

PREREQUISITES = [
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gpg",
    "software-properties-common",
]
PACKAGES = ["cri-o", "kubelet", "kubeadm", "kubectl"]
HELD_PACKAGES = ["kubelet", "kubeadm", "kubectl"]


@dataclass
class AptRepository:
    name: str
    url: str

    @property
    def keyring(self) -> Path:
        return KEYRING_DIR / f"{self.name}-apt-keyring.gpg"

    @property
    def key_url(self) -> str:
        return f"{self.url}Release.key"

    @property
    def source_line(self) -> str:
        return f"deb [signed-by={self.keyring}] {self.url} /\n"

    @property
    def source_file(self) -> Path:
        return SOURCES_DIR / f"{self.name}.list"


def repositories(kubernetes_version: str, crio_version: str) -> List[AptRepository]:
    return [
        AptRepository(
            "kubernetes",
            f"https://pkgs.k8s.io/core:/stable:/{kubernetes_version}/deb/",
        ),
        AptRepository(
            "cri-o",
            f"https://download.opensuse.org/repositories/isv:/cri-o:/stable:/{crio_version}/deb/",
        ),
    ]


def fetch_key(url: str, timeout: float = 30.0) -> str:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise HetzkubeError(f"Failed to download signing key {url}: {e}")
    return response.text


def add_repository(repo: AptRepository) -> None:
    log.info(f"Adding {repo.name} apt repository")
    key = fetch_key(repo.key_url)
    KEYRING_DIR.mkdir(parents=True, exist_ok=True)
    shell.run_command(["gpg", "--batch", "--yes", "--dearmor", "-o", str(repo.keyring)], input=key)
    shell.write_root_file(repo.source_file, repo.source_line)


def install_kube_tools(kubernetes_version: str, crio_version: str) -> None:
    log.info("Installing Kubernetes tools and CRI-O runtime...")

    shell.run_command(["apt-get", "update"], capture=False)
    shell.run_command(["apt-get", "install", "-y"] + PREREQUISITES, capture=False)

    for repo in repositories(kubernetes_version, crio_version):
        add_repository(repo)

    shell.run_command(["apt-get", "update"], capture=False)
    try:
        shell.run_command(["apt-get", "install", "-y"] + PACKAGES, capture=False)
    except CommandError as e:
        e.hints.append(f"Check that {kubernetes_version} exists at https://pkgs.k8s.io/core:/stable:/")
        raise
    shell.run_command(["apt-mark", "hold"] + HELD_PACKAGES)

    shell.run_command(["systemctl", "start", "crio.service"])
    shell.run_command(["systemctl", "enable", "crio.service"])
    shell.run_command(["systemctl", "enable", "kubelet"])

    log.ok("Installation complete!")
    log.echo("Container runtime: CRI-O")
    log.echo(f"Kubernetes version: {kubernetes_version}")
    log.echo()
    log.echo("Verify installation:")
    log.echo("  sudo systemctl status crio")
    log.echo("  kubeadm version")
    log.echo("  kubectl version --client")
