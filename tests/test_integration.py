"""End-to-end workflows against real git repositories in a temporary sandbox."""

import os
import re
import shutil

import pytest
from conftest import Sandbox

from repo_sync.audit import AuditLog
from repo_sync.engine import SyncEngine
from repo_sync.models import Outcome, SyncState

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

S = SyncState


@pytest.fixture
def engine(audit: AuditLog) -> SyncEngine:
    return SyncEngine(audit, network_timeout=60)


def test_pull_clean_repository(sandbox: Sandbox, engine: SyncEngine) -> None:
    """Verifies a clean clone fast-forwards to the remote without stashing."""
    remote_sha = sandbox.commit_in_other("notes.txt", "line one\nline two\n", "Add")

    result = engine.pull(str(sandbox.local))

    assert result.outcome is Outcome.PULLED
    assert result.states == [
        S.START,
        S.LOCKED,
        S.PROBED,
        S.CLEAN,
        S.FETCHED,
        S.PULLED,
        S.DONE,
    ]
    assert sandbox.git(sandbox.local, "rev-parse", "HEAD") == remote_sha
    assert sandbox.git(sandbox.local, "stash", "list") == ""


def test_pull_preserves_unrelated_local_edits(
    sandbox: Sandbox, engine: SyncEngine
) -> None:
    """Verifies that uncommitted edits survive a pull touching other files."""
    (sandbox.local / "todo.txt").write_text("buy milk\n")
    remote_sha = sandbox.commit_in_other("notes.txt", "line one\nline two\n", "Add")

    result = engine.pull(str(sandbox.local))

    assert result.outcome is Outcome.PULLED
    assert S.STASHED in result.states
    assert S.RESTORED in result.states
    assert result.repository.stashed is False
    assert (sandbox.local / "todo.txt").read_text() == "buy milk\n"
    assert (sandbox.local / "notes.txt").read_text() == "line one\nline two\n"
    assert sandbox.git(sandbox.local, "rev-parse", "HEAD") == remote_sha
    assert sandbox.git(sandbox.local, "stash", "list") == ""


def test_pull_restore_conflict_keeps_stash(
    sandbox: Sandbox, engine: SyncEngine, audit: AuditLog
) -> None:
    """Verifies a conflicting restore is reported and the stash kept."""
    (sandbox.local / "notes.txt").write_text("local version\n")
    sandbox.commit_in_other("notes.txt", "remote version\n", "Rewrite notes")

    result = engine.pull(str(sandbox.local))

    assert result.outcome is Outcome.RESTORE_CONFLICT
    assert S.RESTORE_CONFLICT in result.states
    assert result.repository.stashed is True
    assert "ManualResolutionRequired" in audit.path.read_text()
    stashes = sandbox.git(sandbox.local, "stash", "list").splitlines()
    assert len(stashes) == 1
    assert "Auto-stash before pull" in stashes[0]


def test_pull_twice_is_idempotent(sandbox: Sandbox, engine: SyncEngine) -> None:
    sandbox.commit_in_other("notes.txt", "line one\nline two\n", "Add")

    first = engine.pull(str(sandbox.local))
    head = sandbox.git(sandbox.local, "rev-parse", "HEAD")
    second = engine.pull(str(sandbox.local))
    third = engine.pull(str(sandbox.local))

    assert first.outcome is Outcome.PULLED
    assert second.outcome is Outcome.UP_TO_DATE
    assert third.outcome is Outcome.UP_TO_DATE
    assert sandbox.git(sandbox.local, "rev-parse", "HEAD") == head


def test_push_local_changes(sandbox: Sandbox, engine: SyncEngine) -> None:
    """Verifies edits are committed with the automated message and published."""
    (sandbox.local / "todo.txt").write_text("ship it\n")
    (sandbox.local / "new.txt").write_text("untracked but staged by add -A\n")

    result = engine.push(str(sandbox.local))

    assert result.outcome is Outcome.PUSHED
    subject = sandbox.git(sandbox.remote, "log", "-1", "--format=%s", "main")
    assert re.fullmatch(
        r"Auto-sync: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \[automated\]", subject
    )
    files = sandbox.git(sandbox.remote, "show", "--name-only", "--format=", "main")
    assert {f for f in files.splitlines() if f} == {"todo.txt", "new.txt"}
    assert sandbox.git(sandbox.local, "status", "--porcelain") == ""


def test_push_integrates_remote_changes_first(
    sandbox: Sandbox, engine: SyncEngine
) -> None:
    remote_sha = sandbox.commit_in_other("notes.txt", "line one\nline two\n", "Add")
    (sandbox.local / "todo.txt").write_text("ship it\n")
    sandbox.git(sandbox.local, "add", "todo.txt")
    sandbox.git(sandbox.local, "commit", "-m", "Staged locally")
    (sandbox.local / "todo.txt").write_text("ship it twice\n")
    sandbox.git(sandbox.local, "config", "pull.rebase", "false")

    result = engine.push(str(sandbox.local))

    assert S.PULLED in result.states
    assert result.outcome is Outcome.PUSHED
    assert (
        sandbox.git(sandbox.remote, "merge-base", "--is-ancestor", remote_sha, "main")
        == ""
    )


def test_push_without_changes(sandbox: Sandbox, engine: SyncEngine) -> None:
    before = sandbox.git(sandbox.remote, "rev-parse", "main")

    result = engine.push(str(sandbox.local))

    assert result.outcome is Outcome.NO_CHANGES
    assert sandbox.git(sandbox.remote, "rev-parse", "main") == before


def test_pull_on_unpublished_branch_is_up_to_date(
    sandbox: Sandbox, engine: SyncEngine
) -> None:
    """Verifies that a branch never pushed is in sync rather than failing."""
    sandbox.git(sandbox.local, "checkout", "-b", "feature")

    result = engine.pull(str(sandbox.local))

    assert result.outcome is Outcome.UP_TO_DATE
    assert result.states == [S.START, S.LOCKED, S.PROBED, S.UP_TO_DATE, S.DONE]


def test_push_publishes_new_branch(sandbox: Sandbox, engine: SyncEngine) -> None:
    sandbox.git(sandbox.local, "checkout", "-b", "feature")
    (sandbox.local / "todo.txt").write_text("feature work\n")

    result = engine.push(str(sandbox.local))

    assert result.outcome is Outcome.PUSHED
    assert sandbox.git(sandbox.remote, "rev-parse", "feature") == sandbox.git(
        sandbox.local, "rev-parse", "HEAD"
    )


def test_unreachable_remote_fails_pull(sandbox: Sandbox, engine: SyncEngine) -> None:
    sandbox.git(
        sandbox.local, "remote", "set-url", "origin", str(sandbox.remote) + "-gone"
    )

    result = engine.pull(str(sandbox.local))

    assert result.outcome is Outcome.FAILED
    assert "Failed to fetch" in result.detail


def test_touched_files_are_not_changes(sandbox: Sandbox, engine: SyncEngine) -> None:
    """Verifies that a bumped mtime is not an edit and the index is left alone."""
    notes = sandbox.local / "notes.txt"
    future = notes.stat().st_mtime + 3600
    os.utime(notes, (future, future))
    index = sandbox.local / ".git" / "index"
    before = index.read_bytes()

    pulled = engine.pull(str(sandbox.local))

    assert pulled.outcome is Outcome.UP_TO_DATE
    assert index.read_bytes() == before

    pushed = engine.push(str(sandbox.local))

    assert pushed.outcome is Outcome.NO_CHANGES
