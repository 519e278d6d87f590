import atexit
import enum
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .constants import APP_NAME, LOCK_DIR_NAME, LOCK_MARKER_NAME
from .errors import LockContention

logger = logging.getLogger(APP_NAME)


class LockResult(enum.Enum):
    """Result of a non-blocking lock attempt."""

    ACQUIRED = "Acquired"
    ALREADY_HELD = "AlreadyHeld"


class LockBackend:
    """Base class defining the TryLock/Unlock capability.

    Implementations must guarantee that among concurrent callers of
    `try_lock` for the same marker, at most one observes success.
    """

    def try_lock(self, marker: Path) -> bool:
        """Atomically creates the marker.

        Args:
            marker (Path): The lock marker path.

        Returns:
            bool: True if this caller created the marker, False if it existed.
        """
        raise NotImplementedError

    def unlock(self, marker: Path) -> None:
        """Removes the marker. Missing markers are ignored."""
        raise NotImplementedError


class DirectoryLockBackend(LockBackend):
    """Uses `mkdir`, which fails atomically when the directory already exists."""

    def try_lock(self, marker: Path) -> bool:
        marker.parent.mkdir(parents=True, exist_ok=True)
        try:
            marker.mkdir()
        except FileExistsError:
            return False
        return True

    def unlock(self, marker: Path) -> None:
        try:
            marker.rmdir()
        except FileNotFoundError:
            pass


class ExclusiveFileLockBackend(LockBackend):
    """Uses an `O_CREAT | O_EXCL` file create as the atomic primitive."""

    def try_lock(self, marker: Path) -> bool:
        marker.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    def unlock(self, marker: Path) -> None:
        marker.unlink(missing_ok=True)


def get_backend(name: str) -> LockBackend:
    """Factory function to retrieve a lock backend by its configured name.

    Args:
        name (str): 'directory' or 'file'.

    Returns:
        LockBackend: The matching backend instance.
    """
    if name == "file":
        return ExclusiveFileLockBackend()
    elif name == "directory":
        return DirectoryLockBackend()
    raise ValueError(f"Unknown lock backend '{name}'")


def marker_path(git_dir: Path) -> Path:
    """Returns the lock marker location inside a repository's metadata directory."""
    return git_dir / LOCK_DIR_NAME / LOCK_MARKER_NAME


class RepositoryLock:
    """Per-repository mutual exclusion across independent invocations.

    The marker's existence is the whole lock state; nothing is written into it.
    A lock acquired by this instance is also released at interpreter exit, so
    a run ended by `sys.exit` or an uncaught exception never leaves it behind.

    Attributes:
        marker (Path): The lock marker path.
        held (bool): Whether this instance currently owns the marker.
    """

    def __init__(
        self,
        git_dir: Path,
        backend: LockBackend | None = None,
        stale_after: int = 0,
    ):
        self.marker = marker_path(git_dir)
        self.backend = backend or DirectoryLockBackend()
        self.stale_after = stale_after
        self.held = False

    def acquire(self) -> LockResult:
        """Attempts to take the lock without blocking.

        Returns:
            LockResult: ACQUIRED, or ALREADY_HELD if another owner exists.
        """
        if self.held:
            return LockResult.ACQUIRED
        if not self.backend.try_lock(self.marker):
            self._warn_if_stale()
            return LockResult.ALREADY_HELD
        self.held = True
        atexit.register(self.release)
        return LockResult.ACQUIRED

    def release(self) -> None:
        """Releases the lock. A no-op when this instance does not hold it."""
        if not self.held:
            return
        self.held = False
        atexit.unregister(self.release)
        self.backend.unlock(self.marker)

    @contextmanager
    def hold(self) -> Iterator["RepositoryLock"]:
        """Scoped acquisition with guaranteed release.

        Raises:
            LockContention: If another invocation holds the lock.
        """
        if self.acquire() is LockResult.ALREADY_HELD:
            raise LockContention(f"Lock already held: {self.marker}")
        try:
            yield self
        finally:
            self.release()

    def _warn_if_stale(self) -> None:
        if self.stale_after <= 0:
            return
        try:
            age = time.time() - self.marker.stat().st_mtime
        except OSError:
            return  # Released by its owner in the meantime.
        if age > self.stale_after:
            logger.warning(
                f"Stale lock detected at {self.marker} ({age / 3600:.1f}h old). "
                f"Run 'repo-sync unlock' on the repository if no sync is running."
            )
