import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_NETWORK_TIMEOUT,
    LIST_FILE,
    PULL_LOG_FILE,
    PUSH_LOG_FILE,
)

logger = logging.getLogger(APP_NAME)

PULL_MODES = ("", "merge", "rebase", "ff-only")
LOCK_BACKENDS = ("directory", "file")


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def _choice(value: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        options = ", ".join(repr(a) for a in allowed)
        raise ValueError(f"Invalid choice '{value}' (expected one of {options})")
    return value


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote every repository is synchronized with.
        list_file (Path): The repository list used when none is given explicitly.
    """

    remote_name: str = "origin"
    list_file: Path = LIST_FILE


@dataclass
class SyncConfig:
    """Workflow settings.

    Attributes:
        network_timeout (int): Seconds before fetch, pull or push is abandoned.
        pull_mode (str): Reconciliation flag passed to `git pull`. Empty defers
            to the repository's own git configuration.
    """

    network_timeout: int = DEFAULT_NETWORK_TIMEOUT
    pull_mode: str = ""


@dataclass
class LockConfig:
    """Repository lock settings.

    Attributes:
        backend (str): 'directory' (atomic mkdir) or 'file' (O_EXCL create).
        stale_after (int): Age in seconds after which a held lock is reported
            as possibly stale. Zero disables the warning.
    """

    backend: str = "directory"
    stale_after: int = 24 * 3600


@dataclass
class LogConfig:
    """Audit log settings.

    Attributes:
        pull_log (Path): Audit log for the pull job.
        push_log (Path): Audit log for the push job.
        echo (bool): Whether audit lines are mirrored to stdout.
    """

    pull_log: Path = PULL_LOG_FILE
    push_log: Path = PUSH_LOG_FILE
    echo: bool = True


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        sync (SyncConfig): Workflow settings.
        lock (LockConfig): Lock settings.
        log (LogConfig): Audit log settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from disk, applying defaults where necessary.

        Args:
            path (Path | None): An explicit config file. Defaults to CONFIG_FILE.

        Returns:
            Config: The populated configuration object.
        """
        instance = cls()
        config_file = path or CONFIG_FILE
        if config_file.exists():
            instance._merge_from_file(config_file)
        elif path is not None:
            logger.warning(f"Config file not found: {path}. Using defaults.")
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "sync" in data:
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])
            if "lock" in data:
                self.lock = self._update_dataclass("lock", self.lock, data["lock"])
            if "log" in data:
                self.log = self._update_dataclass("log", self.log, data["log"])

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in ["network_timeout", "stale_after"]:
                    filtered_updates[k] = parse_time(v)
                elif k in ["list_file", "pull_log", "push_log"]:
                    filtered_updates[k] = Path(v).expanduser()
                elif k == "pull_mode":
                    filtered_updates[k] = _choice(v, PULL_MODES)
                elif k == "backend":
                    filtered_updates[k] = _choice(v, LOCK_BACKENDS)
                else:
                    filtered_updates[k] = v
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
