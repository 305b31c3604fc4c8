"""s3cmd-backed directory backup.

Each source directory is mirrored with `s3cmd sync --delete-removed` to

    <BUCKET_OBJECT><source dir relative to />/

so /home lands in s3://bucket/prefix/home/ and / in s3://bucket/prefix/.
Every directory keeps its own s3cmd cache file under S3CMD_CACHE_DIR so
repeated syncs skip unchanged files without re-reading remote metadata.

Config keys:
    ACCESS_KEY_ID, SECRET_ACCESS_KEY, BUCKET_OBJECT, STORAGE_CLASS, LOG_DIR
    SOURCE_DIRS_REXCLUDE["/dir"]='regex'   (empty string: nothing excluded)
    optional: S3CMD_PATH, S3CMD_CACHE_DIR, DRY_RUN, LOCK_DIR
"""

import re
from pathlib import Path

from backhaul.backup.base import BackupJob
from backhaul.tools import run_tool

DEFAULT_CACHE_DIR = "/var/cache/s3cmd"

_S3_URI = re.compile(r"^[sS]3://")


def s3_uri_for(bucket_object, source_dir):
    """Destination URI for a source directory. Always ends with '/'."""
    base = bucket_object.rstrip("/") + "/"
    if source_dir == "/":
        return base
    return f"{base}{source_dir.lstrip('/')}/"


def cache_file_for(cache_dir, source_dir):
    return Path(cache_dir) / f"sync_cache{source_dir.replace('/', '_')}"


class S3cmdBackup(BackupJob):

    name = "s3backup"
    tool = "s3cmd"
    tool_path_key = "S3CMD_PATH"
    required_keys = (
        "ACCESS_KEY_ID",
        "SECRET_ACCESS_KEY",
        "BUCKET_OBJECT",
        "STORAGE_CLASS",
        "LOG_DIR",
    )
    sources_key = "SOURCE_DIRS_REXCLUDE"

    @property
    def bucket_object(self):
        return self.config["BUCKET_OBJECT"].rstrip("/") + "/"

    @property
    def cache_dir(self):
        return self.config.get("S3CMD_CACHE_DIR") or DEFAULT_CACHE_DIR

    def validate(self):
        super().validate()
        if not _S3_URI.match(self.config["BUCKET_OBJECT"]):
            raise ValueError(
                f"invalid destination syntax not matching s3://: {self.config['BUCKET_OBJECT']}"
            )

    def _credential_args(self):
        return [
            f"--access_key={self.config['ACCESS_KEY_ID']}",
            f"--secret_key={self.config['SECRET_ACCESS_KEY']}",
        ]

    def check_destination(self, log):
        result = run_tool(
            [self.tool_path, "info", *self._credential_args(), "--quiet", self.bucket_object]
        )
        if result.returncode != 0:
            log.output(result.stdout)
            raise RuntimeError(f"{self.bucket_object} does not exist or cannot access")
        log.info(f"Sending backup to {self.bucket_object}")

    def prepare(self):
        Path(self.cache_dir).mkdir(parents=True, exist_ok=True)

    def command(self, source_dir, exclude):
        cmd = [
            self.tool_path, "sync",
            *self._credential_args(),
            "--verbose",
            f"--storage-class={self.config['STORAGE_CLASS']}",
        ]
        if exclude:
            cmd += ["--rexclude", exclude]
        cmd += [
            f"--cache-file={cache_file_for(self.cache_dir, source_dir)}",
            "--delete-removed",
        ]
        if self.dry_run:
            cmd.append("--dry-run")
        source = "/" if source_dir == "/" else f"{source_dir}/"
        cmd += [source, s3_uri_for(self.bucket_object, source_dir)]
        return cmd
