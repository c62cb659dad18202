"""Reading flags from the etcd static pod manifest."""

import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml

DEFAULT_ENDPOINT = "https://127.0.0.1:2379"
DEFAULT_DATA_DIR = "/var/lib/etcd"
DEFAULT_PEER_URL = "https://127.0.0.1:2380"

FLAG_RE = re.compile(r"--([a-z0-9-]+)=(\S+)")


class EtcdManifest:
    """Flags of the etcd container in /etc/kubernetes/manifests/etcd.yaml"""

    def __init__(self, flags: Dict[str, str]):
        self.flags = flags

    @classmethod
    def parse(cls, text: str) -> "EtcdManifest":
        return cls(_flags_from_yaml(text) or _flags_from_text(text))

    @classmethod
    def load(cls, path: Path) -> "EtcdManifest":
        if not path.exists():
            return cls({})
        return cls.parse(path.read_text())

    def get(self, name: str) -> Optional[str]:
        value = self.flags.get(name)
        return value or None

    @property
    def client_endpoint(self) -> str:
        for url in (self.get("listen-client-urls") or "").split(","):
            if url.startswith("https://"):
                return url
        return DEFAULT_ENDPOINT

    @property
    def data_dir(self) -> str:
        return self.get("data-dir") or DEFAULT_DATA_DIR

    @property
    def peer_url(self) -> str:
        return self.get("initial-advertise-peer-urls") or DEFAULT_PEER_URL


def _flags_from_yaml(text: str) -> Dict[str, str]:
    try:
        doc = yaml.safe_load(text) or {}
    except yaml.YAMLError:
        return {}
    if not isinstance(doc, dict):
        return {}

    containers = (doc.get("spec") or {}).get("containers") or []
    for container in containers:
        if not isinstance(container, dict):
            continue
        args: List[str] = list(container.get("command") or []) + list(container.get("args") or [])
        if container.get("name") == "etcd" or any(str(a).endswith("etcd") for a in args[:1]):
            return _flags_from_args(args)
    return {}


def _flags_from_args(args: List[str]) -> Dict[str, str]:
    flags: Dict[str, str] = {}
    for arg in args:
        arg = str(arg)
        if arg.startswith("--") and "=" in arg:
            name, value = arg[2:].split("=", 1)
            flags.setdefault(name, value)
    return flags


def _flags_from_text(text: str) -> Dict[str, str]:
    """Fallback for manifests that do not parse as a pod spec."""
    flags: Dict[str, str] = {}
    for name, value in FLAG_RE.findall(text):
        flags.setdefault(name, value)
    return flags
