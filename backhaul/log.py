"""Per-run logging.

Every run writes to its own timestamped file under the configured log
directory, e.g. /var/log/b2backup/b2backup-20240131-020000.log, and echoes
each line to the terminal through rich.
"""

from datetime import datetime
from pathlib import Path

from rich.console import Console


class RunLog:

    def __init__(self, log_dir=None, prefix="backhaul", console=None):
        self.console = console or Console()
        self.path = None
        self._file = None
        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            self.path = log_dir / f"{prefix}-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
            self._file = open(self.path, "a")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is not None:
            self._write(f"ERROR: {exc}")
        self.close()
        return False

    def info(self, message):
        self._write(message)
        self.console.print(message, highlight=False, markup=False)

    def error(self, message):
        self._write(f"ERROR: {message}")
        self.console.print(message, style="red", highlight=False, markup=False)

    def output(self, text):
        """Record raw tool output verbatim."""
        text = (text or "").rstrip("\n")
        if not text:
            return
        if self._file:
            self._file.write(text + "\n")
            self._file.flush()
        self.console.print(text, highlight=False, markup=False)

    def close(self):
        if self._file:
            self._file.close()
            self._file = None

    def _write(self, message):
        if not self._file:
            return
        stamp = datetime.now().isoformat(timespec="seconds")
        self._file.write(f"{stamp} {message}\n")
        self._file.flush()
