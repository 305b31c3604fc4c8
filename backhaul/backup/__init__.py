from backhaul.backup.b2 import ResticB2Backup
from backhaul.backup.s3 import S3cmdBackup

BACKUP_JOBS = {
    "s3": S3cmdBackup,
    "b2": ResticB2Backup,
}


def create_backup_job(kind, config, console=None):
    """Create a backup job from its kind ("s3" or "b2") and loaded config."""
    if kind not in BACKUP_JOBS:
        raise ValueError(f"Unknown backup kind: {kind!r}. Available: {list(BACKUP_JOBS)}")
    return BACKUP_JOBS[kind](config, console=console)
