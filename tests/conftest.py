"""Shared fixtures: audit logs, mocked repositories and real git sandboxes."""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from repo_sync.audit import AuditLog


def git(cwd: Path, *args: str) -> str:
    """Runs a git command for test setup and returns its stripped stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return res.stdout.strip()


@pytest.fixture
def audit(tmp_path: Path) -> AuditLog:
    """An audit log writing to a temporary file, without console echo."""
    log = AuditLog(tmp_path / "audit.log", echo=False)
    yield log
    log.close()


@pytest.fixture
def mock_repo(tmp_path: Path, mocker: MagicMock) -> MagicMock:
    """Patches GitRepo in the engine with a mock backed by a real lock directory.

    The mock describes a clean repository on 'main' whose remote has not moved.
    """
    repo_dir = tmp_path / "repo"
    (repo_dir / ".git").mkdir(parents=True)

    mock_cls = mocker.patch("repo_sync.engine.GitRepo")
    repo = mock_cls.return_value
    repo.path = repo_dir
    repo.git_dir = repo_dir / ".git"
    repo.operation_in_progress.return_value = None
    repo.current_branch.return_value = "main"
    repo.is_dirty.return_value = False
    repo.stash_push.return_value = "stash_sha"
    repo.remote_branch_exists.return_value = True

    heads = {"HEAD": "a" * 40, "origin/main": "a" * 40}
    repo.rev_parse.side_effect = lambda rev: heads.get(rev)
    repo.heads = heads
    return repo


@dataclass
class Sandbox:
    """A bare remote plus two clones: the synced `local` and a second `other`."""

    remote: Path
    local: Path
    other: Path

    @staticmethod
    def git(cwd: Path, *args: str) -> str:
        return git(cwd, *args)

    def commit_in_other(self, name: str, content: str, message: str) -> str:
        (self.other / name).write_text(content)
        git(self.other, "add", name)
        git(self.other, "commit", "-m", message)
        git(self.other, "push", "origin", "main")
        return git(self.other, "rev-parse", "HEAD")


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolates git from the user's configuration and fixes the identity."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Sync Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "sync@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Sync Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "sync@example.com")


@pytest.fixture
def sandbox(tmp_path: Path, git_env: None) -> Sandbox:
    """Builds a remote with one commit on 'main' and two clones of it."""
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", str(remote))
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    seed = tmp_path / "seed"
    git(tmp_path, "init", str(seed))
    git(seed, "symbolic-ref", "HEAD", "refs/heads/main")
    (seed / "notes.txt").write_text("line one\n")
    (seed / "todo.txt").write_text("nothing yet\n")
    git(seed, "add", ".")
    git(seed, "commit", "-m", "Initial commit")
    git(seed, "remote", "add", "origin", str(remote))
    git(seed, "push", "origin", "main")

    local = tmp_path / "local"
    other = tmp_path / "other"
    git(tmp_path, "clone", str(remote), str(local))
    git(tmp_path, "clone", str(remote), str(other))
    return Sandbox(remote=remote, local=local, other=other)
