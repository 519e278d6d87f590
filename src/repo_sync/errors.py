"""Exception taxonomy for the synchronization engine.

Only `ConfigError` is fatal to a run. Every other error is caught at the
per-repository boundary, logged with the repository path, and the run moves on
to the next repository.
"""


class RepoSyncError(Exception):
    """Base class for all repo-sync errors."""


class ConfigError(RepoSyncError):
    """The repository list could not be loaded. Aborts the run."""


class GitError(RepoSyncError, RuntimeError):
    """A git command exited non-zero or timed out."""


class LockContention(RepoSyncError):
    """Another invocation holds the repository lock."""


class ProbeError(RepoSyncError):
    """The local or remote state of a repository could not be determined."""


class FetchError(ProbeError):
    """Fetching remote references failed (offline, auth, remote removed)."""


class PullFailure(RepoSyncError):
    """Integrating remote changes failed; a manual merge is required."""


class StashError(RepoSyncError):
    """Creating the protective stash failed. The pull must not proceed."""


class StashRestoreConflict(RepoSyncError):
    """Re-applying an auto-stash failed; the stash is left for manual recovery."""


class PushFailure(RepoSyncError):
    """Uploading local commits to the remote failed."""
