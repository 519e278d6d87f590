"""repo-sync: Unattended pull/push synchronization for many git repositories.

This package provides the command-line interface, the per-repository sync
engine (locking, probing, stash protection) and the orchestrator that the
scheduled pull and push jobs run.
"""

from . import (
    audit,
    cli,
    config,
    constants,
    engine,
    errors,
    git_wrapper,
    lock,
    models,
    orchestrator,
    probe,
    repo_list,
    service,
    stash,
)

__all__ = [
    "audit",
    "cli",
    "config",
    "constants",
    "engine",
    "errors",
    "git_wrapper",
    "lock",
    "models",
    "orchestrator",
    "probe",
    "repo_list",
    "service",
    "stash",
]
