import os
from contextlib import contextmanager
from pathlib import Path

try:
    import fcntl
    _FCNTL_AVAILABLE = True
except ImportError:
    _FCNTL_AVAILABLE = False  # Windows: run_lock refuses to run

from backhaul.config import DEFAULT_LOCK_DIR


class LockHeldError(RuntimeError):
    """Another process already holds the run lock."""


def lock_path_for(name, lock_dir=None):
    return Path(lock_dir or DEFAULT_LOCK_DIR) / f"{name}.lock"


@contextmanager
def run_lock(name, lock_dir=None):
    """Hold an exclusive lock on <lock_dir>/<name>.lock for the duration of a run.

    The lock belongs to the open file, so the kernel drops it if the process
    dies; no stale pid checks are needed. The pid is still written for operators.
    """
    if not _FCNTL_AVAILABLE:
        raise RuntimeError(f"Cannot lock {name}: fcntl.flock is not available on this platform")
    lock_path = lock_path_for(name, lock_dir)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_fd = open(lock_path, "a+")
    locked = False
    try:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_fd.seek(0)
            holder = lock_fd.read().strip() or "unknown"
            raise LockHeldError(
                f"Unable to obtain lock {lock_path} - already running (pid {holder})"
            )
        locked = True
        lock_fd.seek(0)
        lock_fd.truncate()
        lock_fd.write(f"{os.getpid()}\n")
        lock_fd.flush()
        yield lock_path
    finally:
        if locked:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
        lock_fd.close()
