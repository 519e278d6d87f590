import os
from pathlib import Path

"""Global constants and path definitions for repo-sync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the application identifier, and the fixed formats shared by the pull and push jobs.
"""

# --- Identity ---
APP_NAME = "repo-sync"
"""str: The human-readable application name."""

APP_LABEL = "io.github.reposync"
"""str: The reverse-DNS style application identifier used for service units."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "repo-sync"
"""Path: The directory for runtime state data (audit logs)."""

PULL_LOG_FILE = STATE_DIR / "pull.log"
"""Path: The audit log written by the pull job."""

PUSH_LOG_FILE = STATE_DIR / "push.log"
"""Path: The audit log written by the push job."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/repo-sync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LIST_FILE: Path = CONFIG_DIR / "repositories"
"""Path: The default repository list (one absolute path per line)."""

# --- Formats ---
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: strftime format shared by audit lines, stash labels and commit messages."""

COMMIT_MESSAGE = "Auto-sync: {timestamp} [automated]"
"""str: Message template for commits created by the push job."""

STASH_LABEL_PREFIX = "Auto-stash before pull"
"""str: Fixed prefix identifying stashes created by the pull job."""

STASH_LABEL = STASH_LABEL_PREFIX + " {timestamp}"
"""str: Label template for stashes created by the pull job."""

# --- Git / Logic Constants ---
LOCK_DIR_NAME = "locks"
"""str: Directory inside the git metadata dir that holds lock markers."""

LOCK_MARKER_NAME = "sync.lock"
"""str: The lock marker shared by the pull and push jobs."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase) that blocks synchronization.
"""

DEFAULT_NETWORK_TIMEOUT = 300
"""int: Seconds before a fetch, pull or push is abandoned."""

PULL_INTERVAL = 60
"""int: Default scheduling interval of the pull job, in seconds."""

PUSH_INTERVAL = 900
"""int: Default scheduling interval of the push job, in seconds."""
