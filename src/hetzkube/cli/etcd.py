"""etcd backup and restore commands"""

from pathlib import Path

import click
from rich.table import Table

from hetzkube import etcd as etcd_ops
from hetzkube.cli.common import handle_errors, typed_confirmer
from hetzkube.etcd.snapshot import human_size
from hetzkube.log import console, log


@click.group()
def etcd():
    """Back up and restore the etcd datastore"""
    pass


@etcd.command("backup")
@click.argument("backup_file", required=False, type=click.Path(dir_okay=False))
@click.pass_context
@handle_errors
def backup_cmd(ctx, backup_file):
    """Create an etcd snapshot (default: <backup_dir>/etcd-backup-<timestamp>.db)"""
    cfg = ctx.obj["config"]
    etcd_ops.preflight(cfg)
    etcd_ops.backup(cfg, Path(backup_file) if backup_file else None)


@etcd.command("restore")
@click.argument("backup_file", type=click.Path(dir_okay=False))
@click.pass_context
@handle_errors
def restore_cmd(ctx, backup_file):
    """Restore etcd from a snapshot (DESTRUCTIVE)"""
    cfg = ctx.obj["config"]
    etcd_ops.preflight(cfg)
    etcd_ops.restore(cfg, Path(backup_file), typed_confirmer(ctx))


@etcd.command("list")
@click.pass_context
@handle_errors
def list_cmd(ctx):
    """List available backups, newest first"""
    backup_dir = Path(ctx.obj["config"]["etcd"]["backup_dir"])
    if not backup_dir.is_dir():
        log.info(f"No backup directory found: {backup_dir}")
        return

    backups = etcd_ops.list_backups(backup_dir)
    if not backups:
        log.info(f"No backups found in {backup_dir}")
        return

    table = Table(title=f"Backups in {backup_dir}")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for item in backups:
        table.add_row(item.path.name, human_size(item.size), item.modified.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)
    console.print(f"Total: {len(backups)} backup(s)")


@etcd.command("verify")
@click.argument("backup_file", type=click.Path(dir_okay=False))
@handle_errors
def verify_cmd(backup_file):
    """Check that a snapshot file is readable"""
    etcd_ops.require_etcdctl()
    log.info(f"Verifying backup: {backup_file}")
    status = etcd_ops.verify(Path(backup_file))
    log.echo(status)
    log.ok("Backup file is valid")
