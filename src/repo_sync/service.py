import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL, PULL_INTERVAL, PUSH_INTERVAL

console = Console()

JOBS = ("pull", "push")


def get_executable() -> str:
    """Locates the installed CLI executable in the system path.

    Returns:
        str: The absolute path to the 'repo-sync' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which("repo-sync")
    if not exe:
        console.print(
            "[bold red]ERROR:[/bold red] Could not find 'repo-sync'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_dir() -> Path:
    """Returns the systemd user unit directory."""
    return Path.home() / ".config/systemd/user"


def unit_name(job: str) -> str:
    """Returns the unit base name for a job ('pull' or 'push')."""
    return f"{APP_LABEL}.{job}"


def render_units(job: str, executable: str, interval: int) -> tuple[str, str]:
    """Builds the .service and .timer unit contents for a job.

    Args:
        job (str): 'pull' or 'push'.
        executable (str): The path to the CLI executable.
        interval (int): Seconds between runs.

    Returns:
        tuple[str, str]: (service_content, timer_content).
    """
    name = unit_name(job)
    service_content = f"""[Unit]
Description=repo-sync {job} job

[Service]
Type=oneshot
ExecStart={executable} {job}
"""
    timer_content = f"""[Unit]
Description=Run repo-sync {job} every {interval} seconds

[Timer]
OnBootSec=2min
OnUnitActiveSec={interval}s
Unit={name}.service

[Install]
WantedBy=timers.target
"""
    return service_content, timer_content


def install_linux(
    unit_dir: Path, executable: str, intervals: dict[str, int]
) -> None:
    """Writes and enables one systemd user timer per job.

    Args:
        unit_dir (Path): The systemd user unit directory.
        executable (str): The path to the CLI executable.
        intervals (dict[str, int]): Seconds between runs, keyed by job.
    """
    unit_dir.mkdir(parents=True, exist_ok=True)

    for job in JOBS:
        service_content, timer_content = render_units(job, executable, intervals[job])
        name = unit_name(job)
        with open(unit_dir / f"{name}.service", "w") as f:
            f.write(service_content)
        with open(unit_dir / f"{name}.timer", "w") as f:
            f.write(timer_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    for job in JOBS:
        subprocess.run(
            ["systemctl", "--user", "enable", "--now", f"{unit_name(job)}.timer"],
            check=True,
        )
    console.print(
        "[bold green]SUCCESS:[/bold green] repo-sync timers active (Linux).\n"
        f"Check status: systemctl --user list-timers '{APP_LABEL}.*'"
    )


def print_crontab(executable: str, intervals: dict[str, int]) -> None:
    """Prints crontab lines for platforms without systemd."""
    console.print("Add these lines with [green]crontab -e[/green]:")
    for job in JOBS:
        minutes = max(1, intervals[job] // 60)
        schedule = "* * * * *" if minutes == 1 else f"*/{minutes} * * * *"
        console.print(f"   {schedule} {executable} {job} >/dev/null 2>&1")


def install(pull_interval: int = PULL_INTERVAL, push_interval: int = PUSH_INTERVAL) -> None:
    """Schedules the pull and push jobs.

    On Linux, this generates systemd units. Elsewhere it prints crontab entries.

    Args:
        pull_interval (int, optional): Seconds between pull runs. Defaults to 60.
        push_interval (int, optional): Seconds between push runs. Defaults to 900.
    """
    exe = get_executable()
    intervals = {"pull": pull_interval, "push": push_interval}

    if sys.platform.startswith("linux"):
        console.print(
            f"Installing timers (pull: {pull_interval}s, push: {push_interval}s)..."
        )
        install_linux(get_unit_dir(), exe, intervals)
    else:
        print_crontab(exe, intervals)


def uninstall() -> None:
    """Disables the timers and removes the unit files (Linux only)."""
    if not sys.platform.startswith("linux"):
        console.print("Remove the repo-sync lines with [green]crontab -e[/green].")
        return

    unit_dir = get_unit_dir()
    for job in JOBS:
        name = unit_name(job)
        subprocess.run(
            ["systemctl", "--user", "disable", "--now", f"{name}.timer"],
            stderr=subprocess.DEVNULL,
        )
        for suffix in (".service", ".timer"):
            (unit_dir / f"{name}{suffix}").unlink(missing_ok=True)

    subprocess.run(["systemctl", "--user", "daemon-reload"])
    console.print("[bold green]SUCCESS:[/bold green] Timers uninstalled.")
