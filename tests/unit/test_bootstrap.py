"""Tests for the complete node setup sequence"""

import pytest

from hetzkube.errors import Cancelled, ValidationError
from hetzkube.installer import bootstrap
from hetzkube.system import firewall, kubeadm, network, packages, vswitch


@pytest.fixture
def recorded(monkeypatch):
    """Replace each setup step with a recorder"""
    calls = []
    monkeypatch.setattr(network, "init_network", lambda: calls.append("network"))
    monkeypatch.setattr(packages, "install_kube_tools", lambda k8s, crio: calls.append(f"tools {k8s} {crio}"))
    monkeypatch.setattr(vswitch, "configure_vswitch", lambda address, settings: calls.append(f"vswitch {address}"))
    monkeypatch.setattr(kubeadm, "init_control_plane", lambda config, hostname=None: calls.append(f"init {hostname}"))
    monkeypatch.setattr(firewall, "open_vswitch", lambda interface: calls.append(f"firewall {interface}"))
    return calls


def test_control_plane_steps(config):
    names = [name for name, _ in bootstrap.control_plane_steps(config, "10.0.0.10/24")]
    assert names[0] == "Configuring network"
    assert names[-1] == "Initializing control plane and Calico CNI"
    assert len(names) == 4


def test_worker_steps_end_with_firewall(config):
    names = [name for name, _ in bootstrap.worker_steps(config, "10.0.0.11/24")]
    assert names[-1] == "Configuring firewall"


def test_dry_run_executes_nothing(config, recorded):
    assert bootstrap.setup_worker(config, "10.0.0.11/24", lambda q: True, dry_run=True) is False
    assert recorded == []


def test_invalid_address_fails_before_plan(config, recorded):
    with pytest.raises(ValidationError):
        bootstrap.setup_control_plane(config, "10.0.0/24", lambda q: True, dry_run=True)


def test_declined(config, recorded, as_root):
    with pytest.raises(Cancelled) as exc:
        bootstrap.setup_worker(config, "10.0.0.11/24", lambda q: False)
    assert exc.value.exit_code == 1
    assert recorded == []


def test_setup_control_plane_order(config, recorded, as_root):
    assert bootstrap.setup_control_plane(config, "10.0.0.10/24", lambda q: True, hostname="k8s.example.com")
    assert recorded == [
        "network",
        "tools v1.34 v1.34",
        "vswitch 10.0.0.10/24",
        "init k8s.example.com",
    ]


def test_setup_worker_order(config, recorded, as_root):
    assert bootstrap.setup_worker(config, "10.0.0.11", lambda q: True)
    assert recorded == ["network", "tools v1.34 v1.34", "vswitch 10.0.0.11", "firewall vlan4000"]


def test_first_failure_stops(config, recorded, as_root, monkeypatch):
    def broken():
        raise RuntimeError("modprobe failed")

    monkeypatch.setattr(network, "init_network", broken)
    with pytest.raises(RuntimeError):
        bootstrap.setup_worker(config, "10.0.0.11/24", lambda q: True)
    assert recorded == []
