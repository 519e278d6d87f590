import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, DEFAULT_NETWORK_TIMEOUT, GIT_LOCK_FILES
from .errors import GitError

logger = logging.getLogger(APP_NAME)

PULL_MODE_FLAGS = {
    "": [],
    "merge": ["--no-rebase"],
    "rebase": ["--rebase"],
    "ff-only": ["--ff-only"],
}


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class is the version-control capability set the sync engine consumes:
    branch and commit resolution, the dirty check, stash handling, and the
    network operations. Every method may fail independently with `GitError`.
    Network operations are bounded by `network_timeout` and never prompt for
    credentials.

    Attributes:
        path (Path): The file system path to the repository root.
        network_timeout (int): Seconds allowed for fetch, pull and push.
    """

    def __init__(self, path: Path, network_timeout: int = DEFAULT_NETWORK_TIMEOUT):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            network_timeout (int, optional): Timeout for network operations in
                                             seconds. Defaults to 300.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        self.network_timeout = network_timeout
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
        return env

    def _exec(
        self, args: list[str], timeout: int | None = None
    ) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                env=self._env(),
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(f"git {args[0]} timed out after {timeout}s") from e
        except OSError as e:
            raise GitError(f"Cannot run git: {e}") from e

    def _run(self, args: list[str], timeout: int | None = None) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            timeout (int | None, optional): Seconds before the command is killed.
                                            Defaults to None (unbounded).

        Returns:
            str: The stripped stdout of the command.

        Raises:
            GitError: If the git command returns a non-zero exit code or times out.
        """
        res = self._exec(args, timeout=timeout)
        if res.returncode != 0:
            detail = (res.stderr or res.stdout or "").strip()
            raise GitError(f"Git error: {detail or f'exit status {res.returncode}'}")
        return res.stdout.strip()

    @property
    def git_dir(self) -> Path:
        """The repository metadata directory (resolves `.git` files of worktrees)."""
        dot_git = self.path / ".git"
        if dot_git.is_dir():
            return dot_git
        return Path(self._run(["rev-parse", "--absolute-git-dir"]))

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or an empty string on a detached HEAD.
        """
        return self._run(["branch", "--show-current"])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'origin/main').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except GitError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def is_dirty(self) -> bool:
        """Checks whether tracked files differ from HEAD (staged or unstaged).

        Untracked files are not considered. Files touched without being changed
        do not count. Git compares their content in memory, and
        `--no-optional-locks` keeps it from writing the refreshed stat cache
        back to the index, so the check never modifies the repository.

        Raises:
            GitError: If git cannot read the working tree or index.
        """
        output = self._run(
            ["--no-optional-locks", "status", "--porcelain", "--untracked-files=no"]
        )
        return bool(output)

    def operation_in_progress(self) -> str | None:
        """Returns the marker of an active merge/rebase/cherry-pick/bisect, if any."""
        git_dir = self.git_dir
        for name in GIT_LOCK_FILES:
            if (git_dir / name).exists():
                return name
        return None

    def fetch(self, remote: str, branch: str) -> None:
        """Retrieves the remote's references for a branch without touching the tree."""
        self._run(["fetch", remote, branch], timeout=self.network_timeout)

    def remote_branch_exists(self, remote: str, branch: str) -> bool:
        """Asks the remote whether it has the branch.

        Tells an unpublished branch apart from an unreachable remote.

        Raises:
            GitError: If the remote could not be queried.
        """
        res = self._exec(
            ["ls-remote", "--exit-code", "--heads", remote, f"refs/heads/{branch}"],
            timeout=self.network_timeout,
        )
        if res.returncode == 0:
            return True
        if res.returncode == 2:
            return False
        raise GitError(f"Git error: {res.stderr.strip()}")

    def pull(self, remote: str, branch: str, mode: str = "") -> None:
        """Fetches and integrates a remote branch into the current branch.

        Args:
            remote (str): The remote name.
            branch (str): The branch to pull.
            mode (str, optional): '', 'merge', 'rebase' or 'ff-only'.
        """
        cmd = ["pull", *PULL_MODE_FLAGS[mode], remote, branch]
        self._run(cmd, timeout=self.network_timeout)

    def push(self, remote: str, branch: str) -> None:
        """Uploads the branch to the remote."""
        self._run(["push", remote, branch], timeout=self.network_timeout)

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the whole working tree.
        """
        self._run(["add", "-A"])

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message."""
        self._run(["commit", "-m", message])

    def stash_push(self, message: str) -> str | None:
        """Stashes tracked modifications under a label.

        Args:
            message (str): The stash label.

        Returns:
            str | None: The stash commit id, or None if git had nothing to stash.
        """
        before = self.rev_parse("refs/stash")
        self._run(["stash", "push", "-m", message])
        after = self.rev_parse("refs/stash")
        if after is None or after == before:
            return None
        return after

    def stash_list(self) -> list[str]:
        """Lists stash commit ids, newest first."""
        output = self._run(["stash", "list", "--format=%H"])
        return output.splitlines() if output else []

    def stash_subjects(self) -> list[str]:
        """Lists stash messages, newest first."""
        output = self._run(["stash", "list", "--format=%s"])
        return output.splitlines() if output else []

    def stash_pop(self, stash_id: str) -> None:
        """Re-applies and drops the stash entry with the given commit id.

        Raises:
            GitError: If the entry is gone or cannot be applied cleanly; in the
                      latter case git keeps the entry.
        """
        entries = self.stash_list()
        if stash_id not in entries:
            raise GitError(f"Git error: stash {stash_id[:8]} no longer exists")
        self._run(["stash", "pop", f"stash@{{{entries.index(stash_id)}}}"])
