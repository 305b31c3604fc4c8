import click
from rich.console import Console
from rich.table import Table

from backhaul import __version__
from backhaul.backup import create_backup_job
from backhaul.config import load_env_config, load_yaml_config
from backhaul.lock import run_lock
from backhaul.log import RunLog
from backhaul.snapshot import ACTIONS, create_snapshot_manager

SNAPSHOT_LOCK = "manage_snapshots"


@click.group()
@click.version_option(version=__version__)
def main():
    """Scheduled backups (s3cmd, restic on B2) and EC2 snapshot rotation."""


def _fail(console, message):
    console.print(f"ERROR: {message}", style="red", highlight=False, markup=False, soft_wrap=True)
    raise SystemExit(1)


def _run_backup(kind, config_file):
    console = Console()
    try:
        config = load_env_config(config_file)
        job = create_backup_job(kind, config, console=console)
        failures = job.run()
    except (ValueError, RuntimeError, OSError) as e:
        _fail(console, e)
    if failures:
        raise SystemExit(1)


def _run_snapshots(action, config_file):
    console = Console()
    try:
        config = load_yaml_config(config_file)
        manager = create_snapshot_manager(config)

        if action == "list":
            _print_snapshots(console, manager.list())
            return

        with RunLog(config.get("log_dir"), f"snapshots-{action}", console) as log, \
                run_lock(SNAPSHOT_LOCK, config.get("lock_dir")):
            if action == "create":
                failures = manager.create(log)
            else:
                manager.rotate(log)
                failures = []
    except (ValueError, RuntimeError, OSError) as e:
        _fail(console, e)
    if failures:
        raise SystemExit(1)


def _print_snapshots(console, snapshots_by_volume):
    if not snapshots_by_volume:
        console.print("[dim]No snapshots found.[/dim]")
        return

    table = Table(title="Snapshots")
    table.add_column("Volume", style="bold cyan")
    table.add_column("Started", style="dim")
    table.add_column("Description")
    table.add_column("Snapshot ID", style="cyan")

    for volume_id, snaps in snapshots_by_volume.items():
        for i, s in enumerate(snaps):
            started = s["start_time"]
            if hasattr(started, "strftime"):
                started = started.strftime("%Y-%m-%d %H:%M")
            table.add_row(volume_id if i == 0 else "", str(started), s["description"], s["id"])
        table.add_section()

    console.print(table)


@main.command("s3")
@click.argument("config_file", type=click.Path(dir_okay=False))
def s3_command(config_file):
    """Sync source directories to S3 with s3cmd.

    Example: backhaul s3 /etc/backhaul/s3.conf
    """
    _run_backup("s3", config_file)


@main.command("b2")
@click.argument("config_file", type=click.Path(dir_okay=False))
def b2_command(config_file):
    """Back up source directories to Backblaze B2 with restic.

    Example: backhaul b2 /etc/backhaul/b2.conf
    """
    _run_backup("b2", config_file)


@main.command("snapshots")
@click.argument("action", type=click.Choice(ACTIONS))
@click.argument("config_file", type=click.Path(dir_okay=False))
def snapshots_command(action, config_file):
    """Create, rotate or list EC2 volume snapshots.

    Example: backhaul snapshots rotate /etc/backhaul/snapshots.yml
    """
    _run_snapshots(action, config_file)


# Standalone entry points matching the cron-friendly `<script> <config>` form.

@click.command()
@click.version_option(version=__version__)
@click.argument("config_file", type=click.Path(dir_okay=False))
def s3_backup(config_file):
    """Sync source directories to S3 with s3cmd."""
    _run_backup("s3", config_file)


@click.command()
@click.version_option(version=__version__)
@click.argument("config_file", type=click.Path(dir_okay=False))
def b2_backup(config_file):
    """Back up source directories to Backblaze B2 with restic."""
    _run_backup("b2", config_file)


@click.command()
@click.version_option(version=__version__)
@click.argument("action", type=click.Choice(ACTIONS))
@click.argument("config_file", type=click.Path(dir_okay=False))
def manage_snapshots(action, config_file):
    """Create, rotate or list EC2 volume snapshots."""
    _run_snapshots(action, config_file)
