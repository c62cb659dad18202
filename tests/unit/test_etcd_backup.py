"""Tests for etcd snapshot backup, listing, verification and restore"""

import os
import time
from pathlib import Path

import pytest

from hetzkube.errors import CommandError, PreflightError, RestoreError, ValidationError
from hetzkube.etcd import snapshot as etcd_snapshot
from hetzkube.etcd import etcdctl
from hetzkube.system import shell

MANIFEST = """\
apiVersion: v1
kind: Pod
spec:
  containers:
  - name: etcd
    command:
    - etcd
    - --data-dir={data_dir}
    - --initial-advertise-peer-urls=https://10.0.0.10:2380
    - --listen-client-urls=https://127.0.0.1:2379,https://10.0.0.10:2379
"""


@pytest.fixture
def control_plane(config):
    """Lay out admin.conf, the etcd manifest and cert dir under tmp_path"""
    settings = config["etcd"]
    Path(config["cluster"]["admin_kubeconfig"]).write_text("kubeconfig")
    Path(settings["cert_dir"]).mkdir(parents=True)
    manifest = Path(settings["manifest"])
    manifest.parent.mkdir(parents=True)
    manifest.write_text(MANIFEST.format(data_dir=settings["data_dir"]))
    return config


def make_backups(directory: Path, count: int):
    directory.mkdir(parents=True, exist_ok=True)
    now = time.time()
    paths = []
    for i in range(count):
        path = directory / f"etcd-backup-2026010{i}-000000.db"
        path.write_bytes(b"x" * 10)
        os.utime(path, (now - 3600 * (count - i), now - 3600 * (count - i)))
        paths.append(path)
    return paths


def write_snapshot(cmd):
    Path(cmd[cmd.index("save") + 1]).write_bytes(b"s" * 2048)


class TestHelpers:
    """Formatting and listing helpers"""

    def test_human_size(self):
        assert etcd_snapshot.human_size(512) == "512B"
        assert etcd_snapshot.human_size(2048) == "2.0K"
        assert etcd_snapshot.human_size(5 * 1024 * 1024) == "5.0M"

    def test_list_backups_newest_first(self, tmp_path):
        paths = make_backups(tmp_path, 3)
        (tmp_path / "notes.txt").write_text("ignored")
        listed = [b.path for b in etcd_snapshot.list_backups(tmp_path)]
        assert listed == list(reversed(paths))

    def test_list_backups_missing_dir(self, tmp_path):
        assert etcd_snapshot.list_backups(tmp_path / "nope") == []

    def test_prune_backups(self, tmp_path):
        paths = make_backups(tmp_path, 4)
        removed = etcd_snapshot.prune_backups(tmp_path, 2)
        assert sorted(removed) == sorted(paths[:2])
        assert sorted(tmp_path.iterdir()) == sorted(paths[2:])

    def test_prune_noop_under_limit(self, tmp_path):
        make_backups(tmp_path, 2)
        assert etcd_snapshot.prune_backups(tmp_path, 10) == []


class TestPreflight:
    """Control plane and etcdctl checks"""

    def test_not_control_plane(self, config):
        with pytest.raises(PreflightError, match="Not a control plane"):
            etcd_snapshot.check_control_plane(config["etcd"], config["cluster"]["admin_kubeconfig"])

    def test_missing_manifest(self, config):
        Path(config["cluster"]["admin_kubeconfig"]).write_text("kubeconfig")
        with pytest.raises(PreflightError, match="etcd manifest not found") as exc:
            etcd_snapshot.check_control_plane(config["etcd"], config["cluster"]["admin_kubeconfig"])
        assert "external etcd" in exc.value.hints[0]

    def test_control_plane_ok(self, control_plane):
        etcd_snapshot.check_control_plane(control_plane["etcd"], control_plane["cluster"]["admin_kubeconfig"])

    def test_require_etcdctl_missing(self, monkeypatch):
        monkeypatch.setattr(shell, "command_exists", lambda name: False)
        with pytest.raises(PreflightError) as exc:
            etcdctl.require_etcdctl()
        assert any("etcd-client" in hint for hint in exc.value.hints)


class TestBackup:
    """Snapshot creation"""

    def test_backup_default_name_and_prune(self, fake_shell, control_plane):
        backup_dir = Path(control_plane["etcd"]["backup_dir"])
        old = make_backups(backup_dir, 3)
        control_plane["etcd"]["keep_backups"] = 2
        fake_shell.respond(["endpoint", "health"], stdout="https://127.0.0.1:2379 is healthy")
        fake_shell.respond(["snapshot", "save"], effect=write_snapshot)

        path = etcd_snapshot.backup(control_plane)

        assert path.parent == backup_dir
        assert path.name.startswith("etcd-backup-") and path.suffix == ".db"
        assert path.exists()
        assert sorted(backup_dir.iterdir()) == sorted([path, old[-1]])

        save = fake_shell.find("snapshot", "save")
        assert "--endpoints=https://127.0.0.1:2379" in save
        assert f"--cacert={Path(control_plane['etcd']['cert_dir']) / 'ca.crt'}" in save
        assert fake_shell.ran("snapshot", "status", str(path), "--write-out=table")

    def test_backup_explicit_file_creates_parent(self, fake_shell, control_plane, tmp_path):
        fake_shell.respond(["snapshot", "save"], effect=write_snapshot)
        target = tmp_path / "elsewhere" / "manual.db"
        assert etcd_snapshot.backup(control_plane, target) == target
        assert target.exists()

    def test_unhealthy_cluster_only_warns(self, fake_shell, control_plane):
        fake_shell.respond(["endpoint", "health"], returncode=1, stderr="unhealthy")
        fake_shell.respond(["snapshot", "save"], effect=write_snapshot)
        assert etcd_snapshot.backup(control_plane).exists()

    def test_save_failure_raises(self, fake_shell, control_plane):
        fake_shell.respond(["snapshot", "save"], returncode=1, stderr="context deadline exceeded")
        with pytest.raises(CommandError):
            etcd_snapshot.backup(control_plane)


class TestVerify:
    """Snapshot validation"""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            etcd_snapshot.verify(tmp_path / "missing.db")

    def test_corrupt(self, fake_shell, tmp_path):
        snapshot = tmp_path / "bad.db"
        snapshot.write_bytes(b"junk")
        fake_shell.respond(["snapshot", "status"], returncode=1, stderr="invalid database\n")
        with pytest.raises(ValidationError, match="invalid or corrupted") as exc:
            etcd_snapshot.verify(snapshot)
        assert exc.value.hints == ["invalid database"]

    def test_valid(self, fake_shell, tmp_path):
        snapshot = tmp_path / "good.db"
        snapshot.write_bytes(b"ok")
        fake_shell.respond(["snapshot", "status"], stdout="| HASH | REVISION |\n")
        assert etcd_snapshot.verify(snapshot) == "| HASH | REVISION |"


class TestRestore:
    """Snapshot restore with rollback"""

    @pytest.fixture
    def restore_env(self, fake_shell, control_plane, tmp_path, monkeypatch):
        monkeypatch.setattr(shell, "hostname", lambda: "cp-1")
        monkeypatch.setattr(shell, "command_exists", lambda name: True)
        data_dir = Path(control_plane["etcd"]["data_dir"])
        (data_dir / "member").mkdir(parents=True)
        (data_dir / "member" / "original").write_text("before")
        snapshot = tmp_path / "snap.db"
        snapshot.write_bytes(b"snapshot")
        fake_shell.respond(["crictl", "ps"], stdout="abc123\n")
        fake_shell.respond(["endpoint", "health"], stdout="is healthy")
        return fake_shell, data_dir, snapshot

    def test_declined(self, restore_env, control_plane):
        fake, data_dir, snapshot = restore_env
        assert etcd_snapshot.restore(control_plane, snapshot, lambda: False) is None
        assert not fake.ran("systemctl")
        assert (data_dir / "member" / "original").exists()

    def test_invalid_snapshot_stops_before_prompt(self, restore_env, control_plane):
        fake, _, snapshot = restore_env
        fake.respond(["snapshot", "status"], returncode=1)
        asked = []
        with pytest.raises(ValidationError):
            etcd_snapshot.restore(control_plane, snapshot, lambda: asked.append(1) or True)
        assert asked == []

    def test_success(self, restore_env, control_plane):
        fake, data_dir, snapshot = restore_env

        result = etcd_snapshot.restore(control_plane, snapshot, lambda: True)

        assert result.healthy
        assert result.data_dir == str(data_dir)
        assert result.previous_data.name.startswith("etcd-data.pre-restore-")
        assert (result.previous_data / "member" / "original").read_text() == "before"

        restore_cmd = fake.find("snapshot", "restore")
        assert f"--data-dir={data_dir}" in restore_cmd
        assert "--name=cp-1" in restore_cmd
        assert "--initial-cluster=cp-1=https://10.0.0.10:2380" in restore_cmd
        assert "--initial-advertise-peer-urls=https://10.0.0.10:2380" in restore_cmd
        assert "--skip-hash-check=true" in restore_cmd

        assert fake.ran("crictl", "stop", "abc123")
        order = [" ".join(c) for c in fake.calls if c[0] in ("systemctl", "chown")]
        assert order == ["systemctl stop kubelet", f"chown -R root:root {data_dir}", "systemctl start kubelet"]

    def test_chown_failure_still_starts_kubelet(self, restore_env, control_plane):
        fake, data_dir, snapshot = restore_env
        fake.respond(["chown"], returncode=1, stderr="operation not permitted")

        result = etcd_snapshot.restore(control_plane, snapshot, lambda: True)

        assert result.healthy
        assert fake.ran("systemctl", "start", "kubelet")

    def test_failure_rolls_back(self, restore_env, control_plane):
        fake, data_dir, snapshot = restore_env

        def partial_restore(cmd):
            data_dir.mkdir()
            (data_dir / "partial").write_text("half")

        fake.respond(["snapshot", "restore"], returncode=1, stderr="restore failed", effect=partial_restore)

        with pytest.raises(RestoreError) as exc:
            etcd_snapshot.restore(control_plane, snapshot, lambda: True)

        assert exc.value.hints == ["restore failed"]
        assert (data_dir / "member" / "original").read_text() == "before"
        assert not (data_dir / "partial").exists()
        assert not list(data_dir.parent.glob("etcd-data.pre-restore-*"))
        assert fake.ran("systemctl", "start", "kubelet")

    def test_health_timeout_still_completes(self, restore_env, control_plane):
        fake, _, snapshot = restore_env
        fake.respond(["endpoint", "health"], returncode=1, stderr="connection refused")
        result = etcd_snapshot.restore(control_plane, snapshot, lambda: True)
        assert not result.healthy
        assert len([c for c in fake.calls if "health" in c]) == 2
