"""Configuration management for hetzkube"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from hetzkube.errors import ValidationError

SYSTEM_CONFIG = Path("/etc/hetzkube/config.yaml")
USER_CONFIG = Path.home() / ".hetzkube" / "config.yaml"

DEFAULTS: Dict[str, Any] = {
    "versions": {
        "kubernetes": "v1.34",
        "crio": "v1.34",
        "calico": "v3.27.0",
        "metrics_server": "v0.7.0",
        "node_problem_detector": "v0.8.19",
    },
    "vswitch": {
        "vlan_id": 4000,
        "interface": "vlan4000",
        "mtu": 1400,
        "netplan_file": "/etc/netplan/10-vswitch.yaml",
        "default_prefix": 24,
    },
    "cluster": {
        "pod_network_cidr": "192.168.0.0/16",
        "api_port": 6443,
        "etcd_client_port": 2379,
        "admin_kubeconfig": "/etc/kubernetes/admin.conf",
        "manifests_dir": "/etc/kubernetes/manifests",
    },
    "etcd": {
        "backup_dir": "/var/backups/etcd",
        "cert_dir": "/etc/kubernetes/pki/etcd",
        "manifest": "/etc/kubernetes/manifests/etcd.yaml",
        "data_dir": "/var/lib/etcd",
        "keep_backups": 10,
        "health_attempts": 12,
        "health_interval": 10,
        "startup_wait": 30,
    },
    "logging": {
        "level": "info",
    },
}

ENV_OVERRIDES = {
    "HETZKUBE_LOG_LEVEL": ("logging", "level"),
    "HETZKUBE_KUBERNETES_VERSION": ("versions", "kubernetes"),
    "HETZKUBE_CRIO_VERSION": ("versions", "crio"),
    "HETZKUBE_ETCD_BACKUP_DIR": ("etcd", "backup_dir"),
    "HETZKUBE_VLAN_INTERFACE": ("vswitch", "interface"),
}


def default_config_path(candidates: Optional[List[Path]] = None) -> Path:
    """First existing config file, falling back to the per-user path."""
    for path in candidates or [SYSTEM_CONFIG, USER_CONFIG]:
        if path.exists():
            return path
    return USER_CONFIG


class ConfigManager:
    """Manage hetzkube configuration"""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or default_config_path()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file and environment"""
        config = self._load_defaults()

        if self.config_path.exists():
            with open(self.config_path) as f:
                try:
                    file_config = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValidationError(f"Invalid YAML in {self.config_path}: {e}")
            if not isinstance(file_config, dict):
                raise ValidationError(f"Config file {self.config_path} must contain a mapping")
            config = self._merge(config, file_config)

        config = self._apply_env_overrides(config)

        return config

    def save(self, config: Dict[str, Any]) -> None:
        """Save configuration to file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)

    def _load_defaults(self) -> Dict[str, Any]:
        return copy.deepcopy(DEFAULTS)

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        for var, (section, key) in ENV_OVERRIDES.items():
            if value := os.getenv(var):
                config.setdefault(section, {})[key] = value

        return config
