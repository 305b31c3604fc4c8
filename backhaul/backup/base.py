import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

from backhaul.config import as_bool, require_keys
from backhaul.lock import run_lock
from backhaul.log import RunLog
from backhaul.tools import find_tool, run_tool


def normalize_source_dir(source_dir):
    """Strip a trailing slash, leaving the filesystem root alone."""
    if source_dir == "/":
        return "/"
    return source_dir.rstrip("/") or "/"


class BackupJob(ABC):
    """Base class for directory backup jobs.

    A job backs up every directory in its sources mapping (directory → exclusion)
    with one external tool invocation per directory. Subclasses supply the
    tool-specific pieces: destination check and per-directory command line.

    Implementations: S3cmdBackup (s3cmd sync), ResticB2Backup (restic on B2).
    """

    name = None             # lock and log file prefix
    tool = None             # binary looked up on PATH
    tool_path_key = None    # optional config override for the binary path
    tool_version_args = ("--version",)
    required_keys = ()
    sources_key = None

    def __init__(self, config, console=None):
        self.config = config
        self.console = console
        self.tool_path = None

    @property
    def dry_run(self):
        return as_bool(self.config.get("DRY_RUN"))

    def sources(self):
        """Source directory → exclusion, with directories normalised.

        /var and /var/ name the same directory; they collapse into one entry and
        must not disagree on the exclusion.
        """
        sources = {}
        for source_dir, exclude in (self.config.get(self.sources_key) or {}).items():
            source_dir = normalize_source_dir(source_dir)
            exclude = exclude or ""
            if sources.get(source_dir, exclude) != exclude:
                raise ValueError(
                    f"{self.sources_key} lists {source_dir} twice with different exclusions"
                )
            sources[source_dir] = exclude
        return sources

    def validate(self):
        """Check config before any external tool is touched."""
        require_keys(self.config, self.required_keys)
        raw_sources = self.config.get(self.sources_key)
        if not isinstance(raw_sources, dict) or not raw_sources:
            raise ValueError(f"{self.sources_key} required to set source directories")
        self.sources()

    def run(self):
        """Back up every source directory. Returns the list of directories that failed."""
        self.validate()
        self.tool_path = find_tool(
            self.tool,
            override=self.config.get(self.tool_path_key),
            version_args=self.tool_version_args,
        )

        with RunLog(self.config["LOG_DIR"], self.name, self.console) as log, \
                run_lock(self.name, self.config.get("LOCK_DIR")):
            start_time = time.time()
            log.info(f"Starting time: {int(start_time)}")
            if self.dry_run:
                log.info("DRY RUN - no data will be transferred")

            self.check_destination(log)

            for source_dir in self.sources():
                if not Path(source_dir).is_dir():
                    raise RuntimeError(f"SOURCE DIRECTORY, {source_dir}, IS NOT A DIRECTORY")

            self.prepare()

            failures = []
            env = self.environment()
            for source_dir, exclude in self.sources().items():
                log.info(f"------ BACKING UP: {source_dir}")
                result = run_tool(self.command(source_dir, exclude), env=env)
                if result.returncode != 0:
                    log.error(f"!!!! ERROR ENCOUNTERED !!!! {source_dir} (exit {result.returncode})")
                    failures.append(source_dir)
                log.output(result.stdout)

            log.info(f"Total time: {int(time.time() - start_time)} seconds")
            if failures:
                log.error(f"{len(failures)} of {len(self.sources())} directories failed: {', '.join(failures)}")
        return failures

    def environment(self):
        """Environment for tool invocations. None inherits the current one."""
        return None

    def prepare(self):
        """Hook run once after validation, before the first directory."""
        pass

    @abstractmethod
    def check_destination(self, log):
        """Verify the destination exists and is reachable. Raise RuntimeError if not."""
        pass

    @abstractmethod
    def command(self, source_dir, exclude):
        """Argument list backing up one directory."""
        pass

    def _scalar_env(self):
        """Current environment plus every scalar config value, like `set -a; source config`."""
        env = dict(os.environ)
        for key, value in self.config.items():
            if isinstance(value, str):
                env[key] = value
        return env
