import datetime
import logging
import sys
from pathlib import Path

from .constants import APP_NAME, TIMESTAMP_FORMAT

MANUAL_RESOLUTION_REQUIRED = "ManualResolutionRequired"
"""str: Event name emitted when an auto-stash could not be re-applied."""


def timestamp() -> str:
    """Returns the current wall-clock time in the shared audit format."""
    return datetime.datetime.now().strftime(TIMESTAMP_FORMAT)


class AuditLog:
    """Append-only, timestamped event sink.

    Every event becomes one `YYYY-MM-DD HH:MM:SS: <message>` line appended to
    the log file and, when `echo` is set, mirrored to stdout. The underlying
    logger is named after the log file, so repeated jobs in one process reuse
    it instead of registering a new one each run; each instance adds and
    removes only its own handlers. Keep at most one open instance per file.
    The file is opened in append mode, which keeps lines from concurrent
    invocations intact.

    Attributes:
        path (Path | None): The log file, or None for console-only logging.
    """

    def __init__(self, path: Path | None, echo: bool = True):
        self.path = path
        target = str(path.resolve()) if path is not None else "console"
        self._logger = logging.getLogger(f"{APP_NAME}.audit.{target}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self._handlers: list[logging.Handler] = []

        formatter = logging.Formatter("%(asctime)s: %(message)s", TIMESTAMP_FORMAT)

        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._handlers.append(
                logging.FileHandler(path, mode="a", encoding="utf-8")
            )
        if echo:
            self._handlers.append(logging.StreamHandler(sys.stdout))

        for handler in self._handlers:
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

    def log(self, message: str) -> None:
        """Appends a free-form line."""
        self._logger.info(message)

    def repo(self, repo_path: str | Path, message: str) -> None:
        """Appends a line scoped to a repository: `[<path>] <message>`."""
        self._logger.info(f"[{repo_path}] {message}")

    def event(self, name: str, repo_path: str | Path, message: str) -> None:
        """Appends a named event line: `[<path>] <name>: <message>`."""
        self._logger.info(f"[{repo_path}] {name}: {message}")

    def close(self) -> None:
        """Flushes and detaches all handlers."""
        for handler in self._handlers:
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
        self._handlers = []

    def __enter__(self) -> "AuditLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
