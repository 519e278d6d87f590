from dataclasses import dataclass

from .errors import FetchError, GitError, ProbeError
from .git_wrapper import GitRepo


@dataclass(frozen=True)
class RemoteState:
    """Snapshot of a repository relative to its remote branch.

    Attributes:
        branch (str): The checked-out branch.
        local_commit (str): HEAD commit id.
        remote_commit (str): `<remote>/<branch>` commit id, or `local_commit`
            when the remote branch does not exist.
        dirty (bool): Tracked files differ from HEAD.
        on_remote (bool): The remote has the branch. False for a branch that
            was never pushed.
    """

    branch: str
    local_commit: str
    remote_commit: str
    dirty: bool
    on_remote: bool = True


class RemoteStateProbe:
    """Fetches a repository's current branch and compares local and remote heads."""

    def __init__(self, remote_name: str = "origin"):
        self.remote_name = remote_name

    def current_branch(self, repo: GitRepo) -> str:
        """Reads the checked-out branch.

        Raises:
            ProbeError: On a detached HEAD or when git cannot answer.
        """
        try:
            branch = repo.current_branch()
        except GitError as e:
            raise ProbeError(f"Cannot read current branch: {e}") from e
        if not branch:
            raise ProbeError("HEAD is detached; no branch to synchronize")
        return branch

    def probe(self, repo: GitRepo) -> RemoteState:
        """Fetches remote refs and resolves the repository's state.

        Args:
            repo (GitRepo): The repository to inspect.

        Returns:
            RemoteState: Branch, local and remote commit ids, and dirtiness.

        Raises:
            FetchError: If the remote references could not be retrieved.
            ProbeError: If the branch or HEAD cannot be resolved locally.
        """
        branch = self.current_branch(repo)

        on_remote = True
        try:
            repo.fetch(self.remote_name, branch)
        except GitError as e:
            on_remote = self._branch_on_remote(repo, branch, e)

        local = repo.rev_parse("HEAD")
        if local is None:
            raise ProbeError(f"Cannot resolve HEAD on {branch} (no commits yet?)")

        # A missing remote branch counts as "no divergence".
        remote = local
        if on_remote:
            remote = repo.rev_parse(f"{self.remote_name}/{branch}") or local

        try:
            dirty = repo.is_dirty()
        except GitError as e:
            raise ProbeError(f"Cannot compare working tree with HEAD: {e}") from e

        return RemoteState(
            branch=branch,
            local_commit=local,
            remote_commit=remote,
            dirty=dirty,
            on_remote=on_remote,
        )

    def _branch_on_remote(self, repo: GitRepo, branch: str, error: GitError) -> bool:
        """Decides whether a failed fetch only means the branch is unpublished.

        Raises:
            FetchError: If the remote is unreachable or has the branch anyway.
        """
        target = f"{self.remote_name}/{branch}"
        try:
            exists = repo.remote_branch_exists(self.remote_name, branch)
        except GitError:
            exists = True
        if exists:
            raise FetchError(f"Failed to fetch from {target}: {error}") from error
        return False
