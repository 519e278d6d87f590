import argparse
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from . import service
from .config import Config
from .constants import CONFIG_FILE, PULL_INTERVAL, PUSH_INTERVAL, STASH_LABEL_PREFIX
from .errors import ConfigError, GitError
from .git_wrapper import GitRepo
from .lock import marker_path
from .models import Mode
from .orchestrator import run_job, setup_logging
from .repo_list import load_repository_list

console = Console()


def _list_file(args: argparse.Namespace, config: Config) -> Path:
    return Path(args.list_file) if args.list_file else config.core.list_file


def _load_list_or_exit(path: Path) -> list[str]:
    try:
        return load_repository_list(path)
    except ConfigError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


def list_repos(list_file: Path) -> None:
    """Prints the parsed repository list."""
    repos = _load_list_or_exit(list_file)
    console.print(f"[bold]{len(repos)} repositories[/bold] from [cyan]{list_file}[/cyan]")
    for repo_str in repos:
        console.print(f"   {repo_str}")


def show_status(list_file: Path) -> None:
    """Displays local state for every listed repository without touching remotes."""
    repos = _load_list_or_exit(list_file)

    table = Table(title="repo-sync Status")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch", style="green")
    table.add_column("Changes")
    table.add_column("Lock")
    table.add_column("Notes", style="dim")

    for repo_str in repos:
        path = Path(repo_str)
        if not path.is_dir():
            table.add_row(repo_str, "-", "-", "-", "[red]Missing[/red]")
            continue
        try:
            repo = GitRepo(path)
            branch = repo.current_branch() or "(detached)"
            changes = "[yellow]Dirty[/yellow]" if repo.is_dirty() else "Clean"
            locked = marker_path(repo.git_dir).exists()
            lock_text = "[bold red]Held[/bold red]" if locked else "Free"
            busy = repo.operation_in_progress()
            stashes = [
                line
                for line in repo.stash_subjects()
                if STASH_LABEL_PREFIX in line
            ]
            notes = []
            if busy:
                notes.append(f"{busy} present")
            if stashes:
                notes.append(f"{len(stashes)} auto-stash(es) pending")
            table.add_row(repo_str, branch, changes, lock_text, ", ".join(notes))
        except ValueError:
            table.add_row(repo_str, "-", "-", "-", "[red]Not a git repository[/red]")
        except GitError as e:
            table.add_row(repo_str, "-", "-", "-", f"[red]{e}[/red]")

    console.print(table)


def unlock_repo(path_str: str, assume_yes: bool = False) -> None:
    """Removes a lock marker left behind by a killed run.

    Args:
        path_str (str): The repository path.
        assume_yes (bool): Skip the confirmation prompt.
    """
    try:
        repo = GitRepo(Path(path_str))
        marker = marker_path(repo.git_dir)
    except (ValueError, GitError) as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    if not marker.exists():
        console.print(f"[blue]INFO:[/blue] No lock held for {path_str}.")
        return

    console.print(
        "[bold yellow]WARNING:[/bold yellow] Only remove the lock if no "
        "repo-sync job is running for this repository."
    )
    if not assume_yes and not Confirm.ask(f"Remove {marker}?", default=False):
        console.print("[bold red]ABORTED.[/bold red]")
        return

    if marker.is_dir():
        marker.rmdir()
    else:
        marker.unlink(missing_ok=True)
    console.print(f"[bold green]SUCCESS:[/bold green] Lock removed for {path_str}.")


def tail_log(config: Config, job: str) -> None:
    """Follows a job's audit log in real-time."""
    log_file = config.log.pull_log if job == "pull" else config.log.push_log
    if not log_file.exists():
        console.print(f"[red]No log file found yet at {log_file}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{log_file}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(log_file)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def open_config(path: Path | None = None) -> None:
    """Opens the configuration file in the user's editor, creating it if needed.

    Args:
        path (Path | None): An alternate config file. Defaults to CONFIG_FILE.
    """
    config_file = path or CONFIG_FILE
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            f.write(
                "# repo-sync Configuration\n\n"
                "[sync]\n"
                '# network_timeout = "5m"\n'
                '# pull_mode = "ff-only"\n'
            )

    editor = os.environ.get("EDITOR") or "nano"
    console.print(f"Opening [cyan]{config_file}[/cyan]...")
    try:
        subprocess.run([editor, str(config_file)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="repo-sync Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("core", "remote_name", "str", '"origin"', "Remote to pull from and push to.")
    table.add_row(
        "",
        "list_file",
        "path",
        '"~/.config/repo-sync/repositories"',
        "Repository list used when none is given on the command line.",
    )
    table.add_row(
        "sync",
        "network_timeout",
        "int | str",
        '"5m"',
        "Time allowed for each fetch, pull or push (e.g., '90s', '5m').",
    )
    table.add_row(
        "",
        "pull_mode",
        "str",
        '""',
        "'merge', 'rebase', 'ff-only', or empty to use git's own setting.",
    )
    table.add_row(
        "lock",
        "backend",
        "str",
        '"directory"',
        "'directory' (atomic mkdir) or 'file' (exclusive create).",
    )
    table.add_row(
        "",
        "stale_after",
        "int | str",
        '"24h"',
        "Warn when a held lock is older than this. 0 disables.",
    )
    table.add_row("log", "pull_log", "path", "state dir", "Audit log of the pull job.")
    table.add_row("", "push_log", "path", "state dir", "Audit log of the push job.")
    table.add_row("", "echo", "bool", "true", "Mirror audit lines to stdout.")

    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-sync",
        description="Keep many git working copies in sync with their remotes.",
    )
    parser.add_argument("--config", type=Path, help="Path to an alternate config.toml")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show git diagnostics on stderr"
    )

    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("pull", "Pull remote changes into every listed repository"),
        ("push", "Commit and push local changes of every listed repository"),
        ("status", "Show branch, changes and lock state of listed repositories"),
        ("list", "Show the parsed repository list"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "list_file", nargs="?", help="Repository list (one path per line)"
        )

    unlock_parser = subparsers.add_parser("unlock", help="Remove a stale lock marker")
    unlock_parser.add_argument("path", help="Repository path")
    unlock_parser.add_argument(
        "--yes", "-y", action="store_true", help="Do not ask for confirmation"
    )

    log_parser = subparsers.add_parser("log", help="Tail a job's audit log")
    log_parser.add_argument("job", choices=["pull", "push"])

    config_parser = subparsers.add_parser(
        "config", help="Open config file or view options"
    )
    config_parser.add_argument(
        "--list", "-l", action="store_true", help="List all configuration options"
    )

    install_parser = subparsers.add_parser(
        "install-service", help="Schedule the pull and push jobs"
    )
    install_parser.add_argument(
        "--pull-interval",
        type=int,
        default=PULL_INTERVAL,
        help=f"Seconds between pull runs (default: {PULL_INTERVAL})",
    )
    install_parser.add_argument(
        "--push-interval",
        type=int,
        default=PUSH_INTERVAL,
        help=f"Seconds between push runs (default: {PUSH_INTERVAL})",
    )
    subparsers.add_parser("uninstall-service", help="Remove the scheduled jobs")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the repo-sync CLI.

    Returns:
        int: The process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    config = Config.load(args.config)

    if args.command in ("pull", "push"):
        list_file = Path(args.list_file) if args.list_file else None
        return run_job(Mode(args.command), list_file, config)
    elif args.command == "status":
        show_status(_list_file(args, config))
    elif args.command == "list":
        list_repos(_list_file(args, config))
    elif args.command == "unlock":
        unlock_repo(args.path, args.yes)
    elif args.command == "log":
        tail_log(config, args.job)
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config(args.config)
    elif args.command == "install-service":
        service.install(args.pull_interval, args.push_interval)
    elif args.command == "uninstall-service":
        service.uninstall()
    else:
        parser.print_help()
    return 0


def pull_main() -> None:
    """Entry point for the scheduled pull job: `repo-sync-pull [LIST]`."""
    sys.exit(main(["pull", *sys.argv[1:]]))


def push_main() -> None:
    """Entry point for the scheduled push job: `repo-sync-push [LIST]`."""
    sys.exit(main(["push", *sys.argv[1:]]))


if __name__ == "__main__":
    sys.exit(main())
