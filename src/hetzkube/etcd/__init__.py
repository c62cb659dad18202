"""etcd snapshot backup and restore."""

from .snapshot import backup, list_backups, preflight, prune_backups, restore, verify
from .etcdctl import Etcdctl, require_etcdctl
from .manifest import EtcdManifest

__all__ = [
    "backup",
    "restore",
    "verify",
    "list_backups",
    "prune_backups",
    "preflight",
    "Etcdctl",
    "EtcdManifest",
    "require_etcdctl",
]
