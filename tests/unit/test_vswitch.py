"""Tests for vSwitch VLAN configuration"""

import pytest
import yaml

from hetzkube.errors import PreflightError, ValidationError
from hetzkube.system import vswitch

IP_LINK = """\
1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN mode DEFAULT
2: enp0s31f6: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 qdisc fq_codel state UP
3: vlan4000@enp0s31f6: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1400 qdisc noqueue
"""

IP_ADDR = """\
4: vlan4000@enp0s31f6: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1400 qdisc noqueue state UP
    inet 10.0.0.10/24 brd 10.0.0.255 scope global vlan4000
       valid_lft forever preferred_lft forever
"""


class TestParsers:
    """ip(8) output parsing"""

    def test_default_route_device(self):
        out = "default via 203.0.113.1 dev enp0s31f6 proto static onlink\n"
        assert vswitch.parse_default_route_device(out) == "enp0s31f6"
        assert vswitch.parse_default_route_device("") is None

    def test_first_physical_link(self):
        assert vswitch.parse_first_physical_link(IP_LINK) == "enp0s31f6"
        assert vswitch.parse_first_physical_link("1: lo: <LOOPBACK>\n") is None

    def test_inet(self):
        assert vswitch.parse_inet(IP_ADDR) == "10.0.0.10/24"


def test_render_netplan():
    doc = yaml.safe_load(vswitch.render_netplan("enp0s31f6", "10.0.0.10/24", 4000, "vlan4000", 1400))
    assert doc == {
        "network": {
            "version": 2,
            "vlans": {
                "vlan4000": {
                    "id": 4000,
                    "link": "enp0s31f6",
                    "addresses": ["10.0.0.10/24"],
                    "mtu": 1400,
                }
            },
        }
    }


def test_vlan_address(fake_shell):
    fake_shell.respond(["ip", "addr", "show", "vlan4000"], stdout=IP_ADDR)
    assert vswitch.vlan_address("vlan4000") == ("10.0.0.10", 24)


def test_vlan_address_missing(fake_shell):
    fake_shell.respond(["ip", "addr", "show"], returncode=1, stderr='Device "vlan4000" does not exist.')
    with pytest.raises(PreflightError) as exc:
        vswitch.vlan_address("vlan4000")
    assert "hetzkube vswitch init" in exc.value.hints[0]


def test_detect_falls_back_to_link_list(fake_shell):
    fake_shell.respond(["ip", "link", "show"], stdout=IP_LINK)
    assert vswitch.detect_physical_interface() == "enp0s31f6"


def test_detect_fails_without_candidates(fake_shell):
    fake_shell.respond(["ip", "link", "show"], stdout="1: lo: <LOOPBACK>\n")
    with pytest.raises(PreflightError, match="Could not detect"):
        vswitch.detect_physical_interface()


def test_ensure_module_persisted(tmp_path):
    modules = tmp_path / "modules"
    modules.write_text("loop\n")
    vswitch.ensure_module_persisted("8021q", modules)
    vswitch.ensure_module_persisted("8021q", modules)
    assert modules.read_text() == "loop\n8021q\n"


def test_configure_vswitch(fake_shell, config, tmp_path, monkeypatch):
    monkeypatch.setattr(vswitch, "MODULES_FILE", tmp_path / "modules")
    fake_shell.respond(["ip", "route", "show", "default"], stdout="default via 203.0.113.1 dev eno1 proto static\n")
    fake_shell.respond(["ip", "addr", "show", "vlan4000"], stdout=IP_ADDR)

    assert vswitch.configure_vswitch("10.0.0.10", config["vswitch"]) == ("10.0.0.10", 24)

    netplan_file = tmp_path / "netplan" / "10-vswitch.yaml"
    doc = yaml.safe_load(netplan_file.read_text())
    assert doc["network"]["vlans"]["vlan4000"]["link"] == "eno1"
    assert doc["network"]["vlans"]["vlan4000"]["addresses"] == ["10.0.0.10/24"]
    assert netplan_file.stat().st_mode & 0o777 == 0o600
    assert fake_shell.ran("apt-get", "install", "vlan")
    assert fake_shell.ran("netplan", "apply")
    assert "8021q" in (tmp_path / "modules").read_text()


@pytest.mark.parametrize("vlan_id", [3999, 4092, "abc", None])
def test_vlan_id_out_of_range(vlan_id):
    with pytest.raises(ValidationError, match="between 4000 and 4091"):
        vswitch.check_vlan_id(vlan_id)


def test_vlan_id_rejected_before_changes(fake_shell, config):
    config["vswitch"]["vlan_id"] = 100
    with pytest.raises(ValidationError):
        vswitch.configure_vswitch("10.0.0.10/24", config["vswitch"])
    assert fake_shell.calls == []
