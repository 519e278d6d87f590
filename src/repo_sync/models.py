"""Value types shared by the sync engine and the orchestrator."""

import enum
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path


class Mode(enum.Enum):
    """Which workflow a job runs."""

    PULL = "pull"
    PUSH = "push"


class LockState(enum.Enum):
    UNLOCKED = "Unlocked"
    LOCKED = "Locked"


class SyncState(enum.Enum):
    """States visited by the pull and push workflows."""

    START = "Start"
    LOCKED = "Locked"
    PROBED = "Probed"
    CLEAN = "Clean"
    STASHED = "Stashed"
    FETCHED = "Fetched"
    UP_TO_DATE = "UpToDate"
    PULLED = "Pulled"
    PULL_FAILED = "PullFailed"
    PULL_SKIPPED = "PullSkipped"
    RESTORED = "Restored"
    RESTORE_CONFLICT = "RestoreConflict"
    NO_CHANGES = "NoChanges"
    COMMITTED = "Committed"
    PUSHED = "Pushed"
    PUSH_FAILED = "PushFailed"
    DONE = "Done"


class Outcome(enum.Enum):
    """Final result of one workflow run on one repository."""

    SKIPPED = "Skipped"
    FAILED = "Failed"
    UP_TO_DATE = "UpToDate"
    PULLED = "Pulled"
    MANUAL_MERGE_REQUIRED = "ManualMergeRequired"
    RESTORE_CONFLICT = "RestoreConflict"
    STASH_FAILED = "StashFailed"
    NO_CHANGES = "NoChanges"
    PUSHED = "Pushed"
    PUSH_FAILED = "PushFailed"


@dataclass
class Repository:
    """The unit of synchronization, rebuilt from the repository list every run.

    Attributes:
        path (Path): Absolute location of the working copy.
        branch (str): Checked-out branch, resolved at the start of each operation.
        local_commit (str | None): HEAD commit id, re-read after every pull or commit.
        remote_commit (str | None): Remote-tracking commit id of `branch`.
        dirty (bool): Tracked files differ from `local_commit`.
        lock_state (LockState): Whether this run holds the repository lock.
        stashed (bool): Whether an auto-stash is outstanding.
    """

    path: Path
    branch: str = ""
    local_commit: str | None = None
    remote_commit: str | None = None
    dirty: bool = False
    lock_state: LockState = LockState.UNLOCKED
    stashed: bool = False

    @property
    def diverged(self) -> bool:
        return self.local_commit != self.remote_commit


@dataclass
class SyncResult:
    """What happened to one repository during one run.

    Attributes:
        path (str): The repository path as listed.
        mode (Mode): The workflow that ran.
        outcome (Outcome | None): Final outcome, set when the workflow ends.
        states (list[SyncState]): The states visited, in order.
        detail (str): Human-readable context for the outcome.
        repository (Repository | None): Final repository state, once resolved.
    """

    path: str
    mode: Mode
    outcome: Outcome | None = None
    states: list[SyncState] = field(default_factory=list)
    detail: str = ""
    repository: Repository | None = None

    def enter(self, state: SyncState) -> None:
        self.states.append(state)

    def finish(self, outcome: Outcome, detail: str = "") -> "SyncResult":
        self.outcome = outcome
        if detail:
            self.detail = detail
        self.states.append(SyncState.DONE)
        return self


@dataclass
class RunSummary:
    """Aggregated results of one orchestrator pass."""

    mode: Mode
    results: list[SyncResult] = field(default_factory=list)

    @property
    def counts(self) -> Counter:
        return Counter(r.outcome for r in self.results)

    def describe(self) -> str:
        """Formats a one-line summary, e.g. '3 repositories: 2 UpToDate, 1 Skipped'."""
        parts = [
            f"{count} {outcome.value if outcome else 'Unknown'}"
            for outcome, count in self.counts.most_common()
        ]
        total = len(self.results)
        noun = "repository" if total == 1 else "repositories"
        return f"{total} {noun}: {', '.join(parts) if parts else 'none processed'}"
