"""Shared fixtures: a recording stand-in for external commands and a temp config"""

import copy
import subprocess
from typing import Callable, List, Optional

import pytest

from hetzkube.config.manager import DEFAULTS
from hetzkube.errors import CommandError
from hetzkube.system import shell


class FakeShell:
    """Records commands and answers them from registered responses.

    A response matches when every token of its pattern appears in the
    command. Later registrations win.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self._responses = []

    def respond(
        self,
        pattern: List[str],
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Optional[Callable[[List[str]], None]] = None,
    ):
        self._responses.insert(0, (pattern, returncode, stdout, stderr, effect))

    def __call__(self, cmd, *, check=True, input=None, env=None, capture=True, timeout=None):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self.inputs.append(input)

        returncode, stdout, stderr = 0, "", ""
        for pattern, rc, out, err, effect in self._responses:
            if all(token in cmd for token in pattern):
                if effect is not None:
                    effect(cmd)
                returncode, stdout, stderr = rc, out, err
                break

        if check and returncode != 0:
            raise CommandError(cmd, returncode, stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def ran(self, *tokens: str) -> bool:
        return any(all(t in cmd for t in tokens) for cmd in self.calls)

    def find(self, *tokens: str) -> List[str]:
        for cmd in self.calls:
            if all(t in cmd for t in tokens):
                return cmd
        raise AssertionError(f"no command with {tokens}: {self.calls}")


@pytest.fixture
def fake_shell(monkeypatch):
    """Replace shell.run_command for the duration of a test"""
    fake = FakeShell()
    monkeypatch.setattr(shell, "run_command", fake)
    return fake


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(shell.os, "geteuid", lambda: 0)


@pytest.fixture
def config(tmp_path):
    """Default configuration with every filesystem path under tmp_path"""
    cfg = copy.deepcopy(DEFAULTS)
    cfg["vswitch"]["netplan_file"] = str(tmp_path / "netplan" / "10-vswitch.yaml")
    cfg["cluster"]["admin_kubeconfig"] = str(tmp_path / "admin.conf")
    cfg["etcd"].update(
        {
            "backup_dir": str(tmp_path / "backups"),
            "cert_dir": str(tmp_path / "pki" / "etcd"),
            "manifest": str(tmp_path / "manifests" / "etcd.yaml"),
            "data_dir": str(tmp_path / "etcd-data"),
            "health_attempts": 2,
            "health_interval": 0,
            "startup_wait": 0,
        }
    )
    return cfg
