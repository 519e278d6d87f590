from pathlib import Path

from .audit import AuditLog, timestamp
from .config import Config
from .constants import COMMIT_MESSAGE, DEFAULT_NETWORK_TIMEOUT
from .errors import (
    FetchError,
    GitError,
    LockContention,
    ProbeError,
    PullFailure,
    PushFailure,
    StashError,
)
from .git_wrapper import GitRepo
from .lock import LockBackend, RepositoryLock, get_backend
from .models import LockState, Mode, Outcome, Repository, SyncResult, SyncState
from .probe import RemoteState, RemoteStateProbe
from .stash import RestoreResult, StashGuard


class SyncEngine:
    """Runs the pull and push workflows on a single repository.

    Both workflows hold the repository lock for their whole duration and
    release it on every exit path. Recoverable problems end the workflow with
    an `Outcome`; only unexpected exceptions propagate, after the lock (and,
    for pull, the stash) has been taken care of.

    Attributes:
        audit (AuditLog): Where every step is reported.
        remote_name (str): The remote all repositories sync with.
        pull_mode (str): Reconciliation flag for `git pull`.
    """

    def __init__(
        self,
        audit: AuditLog,
        remote_name: str = "origin",
        network_timeout: int = DEFAULT_NETWORK_TIMEOUT,
        pull_mode: str = "",
        lock_backend: LockBackend | None = None,
        stale_lock_after: int = 0,
    ):
        self.audit = audit
        self.remote_name = remote_name
        self.network_timeout = network_timeout
        self.pull_mode = pull_mode
        self.lock_backend = lock_backend
        self.stale_lock_after = stale_lock_after
        self.probe = RemoteStateProbe(remote_name)
        self.stash_guard = StashGuard(audit)

    @classmethod
    def from_config(cls, config: Config, audit: AuditLog) -> "SyncEngine":
        return cls(
            audit,
            remote_name=config.core.remote_name,
            network_timeout=config.sync.network_timeout,
            pull_mode=config.sync.pull_mode,
            lock_backend=get_backend(config.lock.backend),
            stale_lock_after=config.lock.stale_after,
        )

    def run(self, mode: Mode, path_str: str) -> SyncResult:
        """Dispatches to the workflow selected by `mode`."""
        if mode is Mode.PULL:
            return self.pull(path_str)
        return self.push(path_str)

    # --- Shared steps ---

    def _open(self, path_str: str) -> tuple[GitRepo, RepositoryLock] | None:
        """Validates a list entry and prepares its repository and lock.

        Returns:
            tuple[GitRepo, RepositoryLock] | None: None if the entry is unusable.
        """
        path = Path(path_str)
        if not path.is_dir():
            self.audit.log(f"WARNING: Directory does not exist: {path_str}")
            return None
        try:
            repo = GitRepo(path, network_timeout=self.network_timeout)
            git_dir = repo.git_dir
        except (ValueError, GitError):
            self.audit.log(f"WARNING: Not a git repository: {path_str}")
            return None
        lock = RepositoryLock(git_dir, self.lock_backend, self.stale_lock_after)
        return repo, lock

    def _is_busy(self, repo: GitRepo, result: SyncResult) -> bool:
        if marker := repo.operation_in_progress():
            self.audit.repo(
                result.path, f"SKIP: Git operation in progress ({marker} present)"
            )
            return True
        return False

    @staticmethod
    def _apply(repository: Repository, state: RemoteState) -> None:
        repository.branch = state.branch
        repository.local_commit = state.local_commit
        repository.remote_commit = state.remote_commit
        repository.dirty = state.dirty

    def _pull(self, repo: GitRepo, repository: Repository, result: SyncResult) -> None:
        """Integrates the remote branch and re-reads HEAD.

        Raises:
            PullFailure: If `git pull` failed; nothing is retried.
        """
        target = f"{self.remote_name}/{repository.branch}"
        try:
            repo.pull(self.remote_name, repository.branch, self.pull_mode)
        except GitError as e:
            raise PullFailure(f"Failed to pull from {target}: {e}") from e
        repository.local_commit = repo.rev_parse("HEAD")
        self.audit.repo(result.path, f"Successfully pulled changes from {target}")

    def _push(self, repo: GitRepo, repository: Repository, result: SyncResult) -> None:
        """Uploads the current branch.

        Raises:
            PushFailure: If `git push` failed.
        """
        target = f"{self.remote_name}/{repository.branch}"
        try:
            repo.push(self.remote_name, repository.branch)
        except GitError as e:
            raise PushFailure(f"Failed to push to {target}: {e}") from e
        self.audit.repo(result.path, f"Successfully pushed to {target}")

    # --- Pull workflow ---

    def pull(self, path_str: str) -> SyncResult:
        """Brings one repository up to date with its remote branch.

        Steps:
        1. Lock (skip on contention).
        2. Fetch and compare heads; stop if identical.
        3. Stash local edits, pull, and restore the stash whatever happened.

        Args:
            path_str (str): The repository path as listed.

        Returns:
            SyncResult: The outcome and the states visited.
        """
        result = SyncResult(path_str, Mode.PULL)
        result.enter(SyncState.START)

        opened = self._open(path_str)
        if opened is None:
            return result.finish(Outcome.SKIPPED, "Invalid repository")
        repo, lock = opened
        repository = Repository(path=repo.path)
        result.repository = repository

        try:
            with lock.hold():
                repository.lock_state = LockState.LOCKED
                result.enter(SyncState.LOCKED)
                return self._pull_locked(repo, repository, result)
        except LockContention:
            self.audit.log(f"SKIP: Another sync process running for {path_str}")
            return result.finish(Outcome.SKIPPED, "Lock held by another process")
        finally:
            repository.lock_state = LockState.UNLOCKED
            self.audit.repo(path_str, f"Pull outcome: {_outcome_name(result)}")

    def _pull_locked(
        self, repo: GitRepo, repository: Repository, result: SyncResult
    ) -> SyncResult:
        if self._is_busy(repo, result):
            return result.finish(Outcome.SKIPPED, "Git operation in progress")

        self.audit.repo(result.path, "Checking for remote changes...")
        try:
            state = self.probe.probe(repo)
        except ProbeError as e:
            self.audit.repo(result.path, str(e))
            return result.finish(Outcome.FAILED, str(e))

        self._apply(repository, state)
        result.enter(SyncState.PROBED)

        if not repository.diverged:
            if state.on_remote:
                self.audit.repo(result.path, "Local branch up to date with remote")
            else:
                self.audit.repo(
                    result.path,
                    f"Branch {state.branch} not on {self.remote_name} yet, nothing to pull",
                )
            result.enter(SyncState.UP_TO_DATE)
            return result.finish(Outcome.UP_TO_DATE)

        self.audit.repo(
            result.path,
            f"Remote changes detected (local: {state.local_commit[:8]}, "
            f"remote: {state.remote_commit[:8]})",
        )

        pull_error: PullFailure | None = None
        try:
            with self.stash_guard.protected(repo, repository) as handle:
                result.enter(SyncState.STASHED if handle.active else SyncState.CLEAN)
                result.enter(SyncState.FETCHED)
                try:
                    self._pull(repo, repository, result)
                    result.enter(SyncState.PULLED)
                except PullFailure as e:
                    pull_error = e
                    result.enter(SyncState.PULL_FAILED)
                    self.audit.repo(result.path, f"{e} - may need manual merge")
        except StashError as e:
            self.audit.repo(result.path, f"ERROR: {e}. Pull skipped.")
            return result.finish(Outcome.STASH_FAILED, str(e))

        if handle.result is RestoreResult.RESTORED:
            result.enter(SyncState.RESTORED)
        elif handle.result is RestoreResult.CONFLICT:
            result.enter(SyncState.RESTORE_CONFLICT)
            return result.finish(
                Outcome.RESTORE_CONFLICT, f"Stash '{handle.label}' left in place"
            )

        if pull_error is not None:
            return result.finish(Outcome.MANUAL_MERGE_REQUIRED, str(pull_error))
        return result.finish(Outcome.PULLED)

    # --- Push workflow ---

    def push(self, path_str: str) -> SyncResult:
        """Commits and uploads local work on one repository.

        Steps:
        1. Lock (skip on contention).
        2. Best-effort pull when the remote has moved.
        3. Stage everything, commit with a timestamped message, push.

        Args:
            path_str (str): The repository path as listed.

        Returns:
            SyncResult: The outcome and the states visited.
        """
        result = SyncResult(path_str, Mode.PUSH)
        result.enter(SyncState.START)

        opened = self._open(path_str)
        if opened is None:
            return result.finish(Outcome.SKIPPED, "Invalid repository")
        repo, lock = opened
        repository = Repository(path=repo.path)
        result.repository = repository

        try:
            with lock.hold():
                repository.lock_state = LockState.LOCKED
                result.enter(SyncState.LOCKED)
                return self._push_locked(repo, repository, result)
        except LockContention:
            self.audit.log(f"SKIP: Another sync process running for {path_str}")
            return result.finish(Outcome.SKIPPED, "Lock held by another process")
        finally:
            repository.lock_state = LockState.UNLOCKED
            self.audit.repo(path_str, f"Push outcome: {_outcome_name(result)}")

    def _push_locked(
        self, repo: GitRepo, repository: Repository, result: SyncResult
    ) -> SyncResult:
        if self._is_busy(repo, result):
            return result.finish(Outcome.SKIPPED, "Git operation in progress")

        self.audit.repo(result.path, "Checking for remote changes...")
        fetched = True
        try:
            self._apply(repository, self.probe.probe(repo))
        except FetchError as e:
            fetched = False
            self.audit.repo(result.path, f"WARNING: {e}")
            try:
                repository.branch = self.probe.current_branch(repo)
            except ProbeError as branch_error:
                self.audit.repo(result.path, str(branch_error))
                return result.finish(Outcome.FAILED, str(branch_error))
        except ProbeError as e:
            self.audit.repo(result.path, str(e))
            return result.finish(Outcome.FAILED, str(e))
        result.enter(SyncState.PROBED)

        if fetched and repository.diverged:
            self.audit.repo(result.path, "Remote changes detected, pulling...")
            try:
                self._pull(repo, repository, result)
                result.enter(SyncState.PULLED)
            except PullFailure as e:
                self.audit.repo(result.path, f"WARNING: {e} (may need manual merge)")
                result.enter(SyncState.PULL_FAILED)
                if marker := repo.operation_in_progress():
                    detail = f"Pull left {marker} behind; not committing"
                    self.audit.repo(result.path, detail)
                    return result.finish(Outcome.MANUAL_MERGE_REQUIRED, detail)
        else:
            if fetched:
                self.audit.repo(result.path, "Local branch up to date with remote")
            result.enter(SyncState.PULL_SKIPPED)

        try:
            repository.dirty = repo.is_dirty()
        except GitError as e:
            self.audit.repo(result.path, f"ERROR: Cannot check for changes: {e}")
            return result.finish(Outcome.FAILED, str(e))

        if not repository.dirty:
            self.audit.repo(result.path, "No changes to sync")
            result.enter(SyncState.NO_CHANGES)
            return result.finish(Outcome.NO_CHANGES)

        self.audit.repo(result.path, "Changes detected, committing...")
        message = COMMIT_MESSAGE.format(timestamp=timestamp())
        try:
            repo.add_all()
            repo.commit(message)
        except GitError as e:
            self.audit.repo(result.path, f"ERROR: Commit failed: {e}")
            return result.finish(Outcome.FAILED, str(e))
        repository.local_commit = repo.rev_parse("HEAD")
        repository.dirty = False
        result.enter(SyncState.COMMITTED)

        try:
            self._push(repo, repository, result)
        except PushFailure as e:
            self.audit.repo(result.path, str(e))
            result.enter(SyncState.PUSH_FAILED)
            return result.finish(Outcome.PUSH_FAILED, str(e))
        result.enter(SyncState.PUSHED)
        return result.finish(Outcome.PUSHED, message)


def _outcome_name(result: SyncResult) -> str:
    return result.outcome.value if result.outcome else "Aborted"
