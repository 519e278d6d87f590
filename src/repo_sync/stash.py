import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from .audit import MANUAL_RESOLUTION_REQUIRED, AuditLog, timestamp
from .constants import APP_NAME, STASH_LABEL
from .errors import GitError, StashError, StashRestoreConflict
from .git_wrapper import GitRepo
from .models import Repository

logger = logging.getLogger(APP_NAME)


class RestoreResult(enum.Enum):
    NOTHING = "Nothing"
    RESTORED = "Restored"
    CONFLICT = "Conflict"


class StashHandle:
    """An outstanding auto-stash, or a no-op when nothing was stashed.

    Attributes:
        stash_id (str | None): Commit id of the stash entry.
        label (str | None): The stash message shown in `git stash list`.
    """

    def __init__(
        self,
        repo: GitRepo | None = None,
        repository: Repository | None = None,
        audit: AuditLog | None = None,
        stash_id: str | None = None,
        label: str | None = None,
    ):
        self.repo = repo
        self.repository = repository
        self.audit = audit
        self.stash_id = stash_id
        self.label = label
        self.result: RestoreResult | None = None

    @property
    def active(self) -> bool:
        return self.stash_id is not None

    def restore(self) -> RestoreResult:
        """Re-applies the stash. Safe to call more than once.

        A conflict leaves the stash in place and emits a
        ManualResolutionRequired event; it is never raised.

        Returns:
            RestoreResult: NOTHING, RESTORED or CONFLICT.
        """
        if self.result is not None:
            return self.result
        if not self.active:
            self.result = RestoreResult.NOTHING
            return self.result

        path = self.repository.path
        self.audit.repo(path, "Restoring stashed local changes...")
        try:
            self._pop()
        except StashRestoreConflict as e:
            self.audit.event(
                MANUAL_RESOLUTION_REQUIRED,
                path,
                f"Conflict restoring stash '{self.label}' ({e}). "
                "Stash left in place for manual recovery.",
            )
            self.result = RestoreResult.CONFLICT
            return self.result

        self.repository.stashed = False
        self.audit.repo(path, "Successfully restored local changes")
        self.result = RestoreResult.RESTORED
        return self.result

    def _pop(self) -> None:
        try:
            self.repo.stash_pop(self.stash_id)
        except GitError as e:
            raise StashRestoreConflict(str(e)) from e


class StashGuard:
    """Protects uncommitted edits around an operation that needs a clean tree."""

    def __init__(self, audit: AuditLog):
        self.audit = audit

    def protect(self, repo: GitRepo, repository: Repository) -> StashHandle:
        """Stashes the working tree if it is dirty.

        Args:
            repo (GitRepo): The repository to operate on.
            repository (Repository): Its state; `dirty` decides whether to stash
                                     and `stashed` is set on success.

        Returns:
            StashHandle: The handle to restore later (a no-op if clean).

        Raises:
            StashError: If creating the stash failed.
        """
        if not repository.dirty:
            return StashHandle()

        label = STASH_LABEL.format(timestamp=timestamp())
        self.audit.repo(repository.path, "Local changes detected, stashing before pull...")
        try:
            stash_id = repo.stash_push(label)
        except GitError as e:
            raise StashError(f"Could not stash local changes: {e}") from e

        if stash_id is None:
            logger.debug(f"{repository.path}: nothing was stashed")
            return StashHandle()

        repository.stashed = True
        return StashHandle(repo, repository, self.audit, stash_id, label)

    @contextmanager
    def protected(self, repo: GitRepo, repository: Repository) -> Iterator[StashHandle]:
        """Scoped protection: the stash is restored however the block exits.

        Raises:
            StashError: If creating the stash failed; the block does not run.
        """
        handle = self.protect(repo, repository)
        try:
            yield handle
        finally:
            handle.restore()
