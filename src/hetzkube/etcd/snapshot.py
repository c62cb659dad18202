"""etcd snapshot backup, restore, listing and verification.

Restore replaces the local member's data directory. The current directory is
moved aside first and moved back if ``etcdctl snapshot restore`` fails.
"""

import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from hetzkube.errors import PreflightError, RestoreError, ValidationError
from hetzkube.etcd.etcdctl import Etcdctl, require_etcdctl
from hetzkube.etcd.manifest import EtcdManifest
from hetzkube.log import log
from hetzkube.system import shell

BACKUP_GLOB = "etcd-backup-*.db"


@dataclass
class BackupFile:
    path: Path
    size: int
    modified: datetime


@dataclass
class RestoreResult:
    data_dir: str
    previous_data: Optional[Path]
    healthy: bool


def timestamp() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "K", "M", "G"):
        if value < 1024 or unit == "G":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


def check_control_plane(settings: Dict[str, Any], admin_kubeconfig: str) -> None:
    """Require a kubeadm control plane running stacked etcd."""
    log.info("Checking if this is a control plane node...")
    if not Path(admin_kubeconfig).exists():
        raise PreflightError(f"Not a control plane node: {admin_kubeconfig} not found")

    manifest = Path(settings["manifest"])
    if not manifest.exists():
        raise PreflightError(
            f"etcd manifest not found: {manifest}",
            ["This node may not be running etcd (external etcd cluster?)"],
        )

    if not Path(settings["cert_dir"]).is_dir():
        raise PreflightError(f"etcd certificate directory not found: {settings['cert_dir']}")

    log.ok("Running on control plane node with etcd")


def preflight(config: Dict[str, Any]) -> None:
    shell.require_root()
    check_control_plane(config["etcd"], config["cluster"]["admin_kubeconfig"])
    require_etcdctl()


def client(settings: Dict[str, Any]) -> Etcdctl:
    manifest = EtcdManifest.load(Path(settings["manifest"]))
    return Etcdctl(manifest.client_endpoint, Path(settings["cert_dir"]))


def list_backups(backup_dir: Path) -> List[BackupFile]:
    """Backups in ``backup_dir``, newest first."""
    if not backup_dir.is_dir():
        return []
    files = []
    for path in backup_dir.glob(BACKUP_GLOB):
        stat = path.stat()
        files.append(BackupFile(path, stat.st_size, datetime.fromtimestamp(stat.st_mtime)))
    return sorted(files, key=lambda b: b.modified, reverse=True)


def prune_backups(backup_dir: Path, keep: int) -> List[Path]:
    """Delete all but the newest ``keep`` backups. Returns deleted paths."""
    backups = list_backups(backup_dir)
    if len(backups) <= keep:
        return []
    log.info(f"Cleaning up old backups (keeping last {keep})...")
    removed = []
    for backup in backups[keep:]:
        backup.path.unlink()
        removed.append(backup.path)
    return removed


def backup(config: Dict[str, Any], backup_file: Optional[Path] = None) -> Path:
    """Take an etcd snapshot. Returns the snapshot path."""
    settings = config["etcd"]
    backup_dir = Path(settings["backup_dir"])

    if backup_file is None:
        backup_dir.mkdir(parents=True, exist_ok=True)
        backup_file = backup_dir / f"etcd-backup-{timestamp()}.db"

    if not backup_file.parent.is_dir():
        log.info(f"Creating backup directory: {backup_file.parent}")
        backup_file.parent.mkdir(parents=True, exist_ok=True)

    log.info("Creating etcd snapshot backup...")
    log.info(f"Backup file: {backup_file}")

    etcd = client(settings)
    log.info("Checking etcd cluster health...")
    if etcd.endpoint_health():
        log.ok("etcd cluster is healthy")
    else:
        log.warn("etcd health check returned warnings (continuing anyway)")

    log.info("Creating snapshot...")
    etcd.snapshot_save(backup_file)
    log.ok("Snapshot created successfully")

    log.info("Verifying backup integrity...")
    status = Etcdctl.snapshot_status(backup_file)
    if status.returncode == 0:
        log.echo((status.stdout or "").rstrip())
        log.ok("Backup verified successfully")
    else:
        log.warn("Could not verify backup (file may still be valid)")

    log.section("Backup completed!")
    log.echo(f"Backup file: {backup_file}")
    log.echo(f"Size: {human_size(backup_file.stat().st_size)}")
    log.echo()
    log.echo("To restore from this backup:")
    log.echo(f"  sudo hetzkube etcd restore {backup_file}")

    prune_backups(backup_dir, int(settings.get("keep_backups", 10)))
    return backup_file


def verify(backup_file: Path) -> str:
    """Validate a snapshot file; returns the status table."""
    if not backup_file.is_file():
        raise ValidationError(f"Backup file not found: {backup_file}")

    status = Etcdctl.snapshot_status(backup_file)
    if status.returncode != 0:
        raise ValidationError(
            "Backup file is invalid or corrupted",
            [line for line in (status.stderr or "").splitlines() if line.strip()],
        )
    return (status.stdout or "").rstrip()


def stop_etcd() -> None:
    log.info("Stopping kubelet...")
    shell.run_command(["systemctl", "stop", "kubelet"])
    log.info("Waiting for etcd to stop...")
    time.sleep(5)

    if shell.command_exists("crictl"):
        result = shell.run_command(["crictl", "ps", "-q", "--name", "etcd"], check=False)
        container = (result.stdout or "").strip()
        if container:
            log.info("Stopping etcd container...")
            shell.run_command(["crictl", "stop"] + container.split(), check=False)
            time.sleep(3)


def wait_for_health(etcd: Etcdctl, attempts: int, interval: float) -> bool:
    for attempt in range(1, attempts + 1):
        log.info(f"Checking etcd health (attempt {attempt}/{attempts})...")
        if etcd.endpoint_health():
            log.ok("etcd is healthy!")
            return True
        time.sleep(interval)
    return False


def restore(
    config: Dict[str, Any],
    backup_file: Path,
    confirm: Callable[[], bool],
) -> Optional[RestoreResult]:
    """Restore the local etcd member from ``backup_file``.

    ``confirm`` is asked after the snapshot has been validated. Returns None
    when the operator declines.
    """
    settings = config["etcd"]

    if not backup_file.is_file():
        raise ValidationError(f"Backup file not found: {backup_file}")

    log.section("etcd RESTORE WARNING")
    log.warn("This will REPLACE the current etcd data!")
    log.warn("All current cluster state will be LOST!")
    log.echo(f"Backup file: {backup_file}")

    log.info("Verifying backup file...")
    if Etcdctl.snapshot_status(backup_file).returncode != 0:
        raise ValidationError("Backup file appears to be invalid or corrupted")
    log.ok("Backup file is valid")

    if not confirm():
        log.info("Restore cancelled")
        return None

    log.info("Starting restore process...")
    manifest = EtcdManifest.load(Path(settings["manifest"]))
    data_dir = manifest.get("data-dir") or settings["data_dir"]
    log.info(f"etcd data directory: {data_dir}")

    node_name = shell.hostname()
    peer_url = manifest.peer_url
    initial_cluster = f"{node_name}={peer_url}"

    stop_etcd()

    data_path = Path(data_dir)
    previous: Optional[Path] = None
    if data_path.is_dir():
        previous = Path(f"{data_dir}.pre-restore-{timestamp()}")
        log.info(f"Backing up current etcd data to: {previous}")
        shutil.move(str(data_path), str(previous))

    log.info(f"Restoring snapshot to: {data_dir}")
    result = Etcdctl.snapshot_restore(backup_file, data_dir, node_name, initial_cluster, peer_url)
    if result.returncode != 0:
        log.error("Snapshot restore failed!")
        log.info("Attempting to restore original data...")
        if previous is not None and previous.is_dir():
            shutil.rmtree(data_path, ignore_errors=True)
            shutil.move(str(previous), str(data_path))
        shell.run_command(["systemctl", "start", "kubelet"], check=False)
        raise RestoreError(
            "Snapshot restore failed; previous etcd data has been put back",
            [line for line in shell.output(result).splitlines() if line.strip()],
        )
    log.ok("Snapshot restored successfully")

    log.info("Fixing etcd data directory permissions...")
    chown = shell.run_command(["chown", "-R", "root:root", data_dir], check=False)
    if chown.returncode != 0:
        log.warn(f"Could not fix ownership of {data_dir}: {shell.output(chown).strip()}")

    log.info("Starting kubelet...")
    shell.run_command(["systemctl", "start", "kubelet"])

    log.info("Waiting for etcd to start (this may take a minute)...")
    time.sleep(int(settings.get("startup_wait", 30)))

    healthy = wait_for_health(
        Etcdctl(manifest.client_endpoint, Path(settings["cert_dir"])),
        int(settings.get("health_attempts", 12)),
        float(settings.get("health_interval", 10)),
    )
    if not healthy:
        log.warn("etcd health check timed out")
        log.info("Check etcd logs: crictl logs $(crictl ps -q --name etcd)")

    log.section("Restore completed!")
    if previous is not None:
        log.echo(f"Previous data backed up to: {previous}")
    log.echo("Verify cluster status:")
    log.echo("  kubectl get nodes")
    log.echo("  kubectl get pods -A")
    log.warn("If this is a multi-node cluster, you may need to:")
    log.warn("  1. Restore the same backup on all control plane nodes")
    log.warn("  2. Or remove and re-join other control plane nodes")

    return RestoreResult(data_dir=data_dir, previous_data=previous, healthy=healthy)
