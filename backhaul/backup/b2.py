"""restic backup to a Backblaze B2 bucket.

The repository must already be initialized (restic -r b2:<bucket> init).
restic reads the B2 credentials and repository password from the
environment, so the whole scalar config is exported to it.

Config keys:
    B2_ACCOUNT_ID, B2_ACCOUNT_KEY, RESTIC_PASSWORD, B2_BUCKET, LOG_DIR
    SOURCE_DIRS_EXCLUDE["/var"]='/var/cache /var/lock'   (space separated)
    optional: RESTIC_PATH, DRY_RUN, LOCK_DIR
"""

from backhaul.backup.base import BackupJob
from backhaul.tools import run_tool


class ResticB2Backup(BackupJob):

    name = "b2backup"
    tool = "restic"
    tool_path_key = "RESTIC_PATH"
    tool_version_args = ("version",)
    required_keys = (
        "B2_ACCOUNT_ID",
        "B2_ACCOUNT_KEY",
        "RESTIC_PASSWORD",
        "B2_BUCKET",
        "LOG_DIR",
    )
    sources_key = "SOURCE_DIRS_EXCLUDE"

    @property
    def repository(self):
        return f"b2:{self.config['B2_BUCKET']}"

    def environment(self):
        return self._scalar_env()

    def check_destination(self, log):
        # Connects, authenticates and confirms the repository exists in one call
        result = run_tool(
            [self.tool_path, "-r", self.repository, "list", "snapshots", "--quiet"],
            env=self.environment(),
        )
        if result.returncode != 0:
            log.output(result.stdout)
            raise RuntimeError(
                f"check to see if bucket has been initialized (restic -r {self.repository} init)"
            )
        log.info(f"Sending backup to {self.repository}")

    def command(self, source_dir, exclude):
        cmd = [self.tool_path, "--repo", self.repository, "backup"]
        cmd += [f"--exclude={path}" for path in exclude.split()]
        cmd.append("--one-file-system")
        if self.dry_run:
            cmd.append("--dry-run")
        cmd.append(source_dir)
        return cmd
