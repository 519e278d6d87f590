"""Loading of the repository list shared by the pull and push jobs."""

from collections.abc import Iterable
from pathlib import Path

from .errors import ConfigError


def parse_repository_list(lines: Iterable[str]) -> list[str]:
    """Extracts repository paths from the lines of a list source.

    Whitespace-only lines and lines whose first non-whitespace character is
    `#` are dropped. Every other line is used verbatim as a path; inline
    comments are not stripped.

    Args:
        lines (Iterable[str]): Raw lines, with or without line terminators.

    Returns:
        list[str]: The repository paths in source order.
    """
    entries = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        entries.append(line)
    return entries


def load_repository_list(path: Path) -> list[str]:
    """Reads and parses the repository list file.

    Args:
        path (Path): The list file.

    Returns:
        list[str]: The repository paths in file order.

    Raises:
        ConfigError: If the file is missing, unreadable, or has no entries.
    """
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            entries = parse_repository_list(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    if not entries:
        raise ConfigError(f"No repositories found in {path}")
    return entries
