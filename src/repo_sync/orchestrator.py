import logging
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType

from .audit import AuditLog
from .config import Config
from .constants import APP_NAME
from .engine import SyncEngine
from .errors import ConfigError
from .models import Mode, Outcome, RunSummary, SyncResult
from .repo_list import load_repository_list

logger = logging.getLogger(APP_NAME)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1


class Orchestrator:
    """Drives one workflow over every listed repository, in list order.

    A failure in one repository is logged and never stops the pass.

    Attributes:
        repositories (list[str]): Repository paths as listed.
        engine (SyncEngine): Runs the per-repository workflow.
        audit (AuditLog): Receives progress and the final summary.
    """

    def __init__(self, repositories: list[str], engine: SyncEngine, audit: AuditLog):
        self.repositories = repositories
        self.engine = engine
        self.audit = audit

    def run(self, mode: Mode) -> RunSummary:
        """Processes each repository once.

        Args:
            mode (Mode): The workflow to run.

        Returns:
            RunSummary: Results for every repository that was processed.
        """
        summary = RunSummary(mode)
        # Duplicate entries would only contend for their own lock.
        repositories = list(dict.fromkeys(self.repositories))

        self.audit.log(
            f"Starting multi-repository {mode.value} for {len(repositories)} repositories"
        )

        for repo_str in repositories:
            self.audit.log(f"Processing repository: {repo_str}")
            try:
                result = self.engine.run(mode, repo_str)
            except Exception as e:
                logger.exception(f"LOOP ERROR {repo_str}")
                self.audit.repo(repo_str, f"ERROR: Unexpected failure: {e}")
                result = SyncResult(repo_str, mode).finish(Outcome.FAILED, str(e))
            summary.results.append(result)

        self.audit.log(f"Multi-repository {mode.value} completed: {summary.describe()}")
        return summary


def setup_logging(verbose: bool = False) -> None:
    """Routes package diagnostics (not audit lines) to stderr.

    Args:
        verbose (bool): If True, include debug output from git invocations.
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if logger.handlers:
        return
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)


@contextmanager
def terminate_on_signals() -> Iterator[None]:
    """Turns SIGTERM/SIGHUP into SystemExit so scoped lock release runs.

    Outside the main thread signal handlers cannot be installed; the block
    then runs unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, _frame: FrameType | None) -> None:
        raise SystemExit(128 + signum)

    signums = [signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        signums.append(signal.SIGHUP)

    previous = {s: signal.signal(s, handler) for s in signums}
    try:
        yield
    finally:
        for s, h in previous.items():
            signal.signal(s, h)


def run_job(
    mode: Mode, list_file: Path | None = None, config: Config | None = None
) -> int:
    """Runs a full pull or push pass as a scheduled job would.

    Args:
        mode (Mode): The workflow to run.
        list_file (Path | None): The repository list. Defaults to the
                                 configured `core.list_file`.
        config (Config | None): Settings. Loaded from disk when omitted.

    Returns:
        int: The process exit status; non-zero only if the list or the audit
             log is unusable.
    """
    config = config or Config.load()
    log_path = config.log.pull_log if mode is Mode.PULL else config.log.push_log
    source = list_file or config.core.list_file

    try:
        audit = AuditLog(log_path, echo=config.log.echo)
    except OSError as e:
        logger.error(f"Cannot open audit log {log_path}: {e}")
        return EXIT_CONFIG_ERROR

    with audit:
        try:
            repositories = load_repository_list(source)
        except ConfigError as e:
            audit.log(f"ERROR: {e}")
            if not source.exists():
                audit.log(
                    f"Please create {source} with repository paths (one per line)"
                )
            return EXIT_CONFIG_ERROR

        engine = SyncEngine.from_config(config, audit)
        with terminate_on_signals():
            Orchestrator(repositories, engine, audit).run(mode)

    return EXIT_OK
