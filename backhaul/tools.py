"""External tool discovery and invocation.

Backups are delegated entirely to third-party binaries (s3cmd, restic).
find_tool() fails fast when the binary is missing; run_tool() never raises on
a non-zero exit so callers can log the failure and carry on.
"""

import shutil
import subprocess


def find_tool(name, override=None, version_args=("--version",)):
    """Return the path of an installed tool, verified by running its version command.

    override is an explicit path from config (S3CMD_PATH, RESTIC_PATH); otherwise
    the tool is looked up on PATH.
    """
    path = override or shutil.which(name)
    if not path:
        raise RuntimeError(f"{name} not installed")
    try:
        result = subprocess.run(
            [path, *version_args],
            capture_output=True,
            text=True,
        )
    except OSError:
        raise RuntimeError(f"{name} not installed (tried {path})")
    if result.returncode != 0:
        raise RuntimeError(f"{name} not installed (tried {path})")
    return path


def run_tool(command, env=None):
    """Run a command, returning the CompletedProcess with stderr merged into stdout."""
    return subprocess.run(
        [str(c) for c in command],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        env=env,
    )
