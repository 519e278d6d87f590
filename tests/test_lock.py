"""Tests for the per-repository lock and its backends."""

import os
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from repo_sync.errors import LockContention
from repo_sync.lock import (
    DirectoryLockBackend,
    ExclusiveFileLockBackend,
    LockBackend,
    LockResult,
    RepositoryLock,
    get_backend,
    marker_path,
)

BACKENDS = [DirectoryLockBackend, ExclusiveFileLockBackend]


@pytest.fixture
def git_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".git"
    path.mkdir()
    return path


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_second_acquire_reports_already_held(
    git_dir: Path, backend_cls: type[LockBackend]
) -> None:
    """Verifies that a held marker blocks a second owner without waiting."""
    first = RepositoryLock(git_dir, backend_cls())
    second = RepositoryLock(git_dir, backend_cls())

    assert first.acquire() is LockResult.ACQUIRED
    assert second.acquire() is LockResult.ALREADY_HELD
    assert marker_path(git_dir).exists()

    first.release()
    assert not marker_path(git_dir).exists()
    assert second.acquire() is LockResult.ACQUIRED
    second.release()


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_release_is_idempotent(git_dir: Path, backend_cls: type[LockBackend]) -> None:
    """Verifies that releasing twice, or without acquiring, is a no-op."""
    lock = RepositoryLock(git_dir, backend_cls())
    lock.release()

    lock.acquire()
    lock.release()
    lock.release()

    assert not lock.held
    assert not marker_path(git_dir).exists()


def test_release_without_ownership_keeps_foreign_marker(git_dir: Path) -> None:
    """Verifies that a non-owner's release never removes another owner's marker."""
    owner = RepositoryLock(git_dir)
    bystander = RepositoryLock(git_dir)
    owner.acquire()

    bystander.acquire()
    bystander.release()

    assert marker_path(git_dir).exists()
    owner.release()


def test_hold_releases_on_exception(git_dir: Path) -> None:
    """Verifies that the scoped lock is released when the block raises."""
    lock = RepositoryLock(git_dir)

    with pytest.raises(RuntimeError):
        with lock.hold():
            assert marker_path(git_dir).exists()
            raise RuntimeError("workflow crashed")

    assert not marker_path(git_dir).exists()


def test_hold_releases_on_system_exit(git_dir: Path) -> None:
    """Verifies that termination via SystemExit still removes the marker."""
    lock = RepositoryLock(git_dir)

    with pytest.raises(SystemExit):
        with lock.hold():
            raise SystemExit(143)

    assert not marker_path(git_dir).exists()


def test_hold_raises_contention(git_dir: Path) -> None:
    owner = RepositoryLock(git_dir)
    owner.acquire()

    with pytest.raises(LockContention):
        with RepositoryLock(git_dir).hold():
            pytest.fail("Block must not run while the lock is held")

    assert marker_path(git_dir).exists()
    owner.release()


def test_acquire_registers_exit_release(git_dir: Path, mocker: MagicMock) -> None:
    """Verifies that an acquired lock is scheduled for release at exit."""
    register = mocker.patch("repo_sync.lock.atexit.register")
    unregister = mocker.patch("repo_sync.lock.atexit.unregister")
    lock = RepositoryLock(git_dir)

    lock.acquire()
    register.assert_called_once_with(lock.release)

    lock.release()
    unregister.assert_called_once_with(lock.release)


@pytest.mark.parametrize("backend_cls", BACKENDS)
def test_concurrent_acquire_has_single_winner(
    git_dir: Path, backend_cls: type[LockBackend]
) -> None:
    """Verifies that among racing callers exactly one acquires the lock."""
    contenders = [RepositoryLock(git_dir, backend_cls()) for _ in range(8)]
    barrier = threading.Barrier(len(contenders))
    results: list[LockResult] = []
    results_lock = threading.Lock()

    def contend(lock: RepositoryLock) -> None:
        barrier.wait()
        outcome = lock.acquire()
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=contend, args=(c,)) for c in contenders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(LockResult.ACQUIRED) == 1
    assert results.count(LockResult.ALREADY_HELD) == len(contenders) - 1
    for c in contenders:
        c.release()
    assert not marker_path(git_dir).exists()


def test_stale_lock_is_reported_not_broken(
    git_dir: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that an old marker triggers a warning but still blocks."""
    marker = marker_path(git_dir)
    marker.mkdir(parents=True)
    old = time.time() - 48 * 3600
    os.utime(marker, (old, old))

    lock = RepositoryLock(git_dir, stale_after=24 * 3600)

    assert lock.acquire() is LockResult.ALREADY_HELD
    assert "Stale lock detected" in caplog.text
    assert marker.exists()


def test_get_backend() -> None:
    assert isinstance(get_backend("directory"), DirectoryLockBackend)
    assert isinstance(get_backend("file"), ExclusiveFileLockBackend)
    with pytest.raises(ValueError, match="Unknown lock backend"):
        get_backend("redis")
