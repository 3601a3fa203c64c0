"""Backups of rewritten files.

A backup is written next to the original, before the original is
overwritten, and holds the exact pre-run bytes. Backups are never removed
automatically; ``restore_backups`` puts them back on request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from dxfix.path_filter import IGNORED_DIRS

TIMESTAMP_PLACEHOLDER = "{timestamp}"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"


@dataclass(frozen=True)
class Backup:
    """A backup of one file.

    Attributes:
        original_path: The file that was backed up.
        backup_path: Where the backup lives.
        content: The backed-up bytes (empty when discovered on disk and not read).
    """

    original_path: Path
    backup_path: Path
    content: bytes = b""


def make_timestamp(now: datetime | None = None) -> str:
    """Format a run timestamp for backup names."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def backup_path_for(path: Path, suffix: str, timestamp: str) -> Path:
    """Derive the backup path for a file.

    Args:
        path: Original file.
        suffix: Backup suffix, optionally containing "{timestamp}".
        timestamp: Run timestamp substituted into the suffix.

    Returns:
        Path next to the original.
    """
    return path.with_name(path.name + suffix.replace(TIMESTAMP_PLACEHOLDER, timestamp))


def create_backup(path: Path, content: bytes, suffix: str, timestamp: str) -> Backup:
    """Write a backup of a file's original bytes.

    Args:
        path: Original file.
        content: Bytes to preserve (the file's content before the run).
        suffix: Backup suffix.
        timestamp: Run timestamp.

    Returns:
        The written Backup.

    Raises:
        OSError: If the backup cannot be written.
    """
    backup_path = backup_path_for(path, suffix, timestamp)
    backup_path.write_bytes(content)
    return Backup(original_path=path, backup_path=backup_path, content=content)


def _backup_name_pattern(suffix: str) -> re.Pattern[str]:
    """Regex recognising backup file names produced with a suffix."""
    if TIMESTAMP_PLACEHOLDER in suffix:
        head, tail = suffix.split(TIMESTAMP_PLACEHOLDER, 1)
        return re.compile(rf"^(?P<orig>.+?){re.escape(head)}(?P<stamp>[0-9T]+){re.escape(tail)}$")
    return re.compile(rf"^(?P<orig>.+){re.escape(suffix)}$")


def find_backups(target: Path, suffix: str) -> dict[Path, list[Path]]:
    """Find backups under a directory (or of a single file).

    Args:
        target: Directory to scan, or an original file.
        suffix: Backup suffix used when the backups were written.

    Returns:
        Mapping of original path to its backups, oldest first.
    """
    pattern = _backup_name_pattern(suffix)
    target = target.resolve()

    if target.is_file():
        candidates = list(target.parent.iterdir())
    else:
        candidates = [
            p
            for p in target.rglob("*")
            if not set(p.relative_to(target).parts[:-1]) & IGNORED_DIRS
        ]

    found: dict[Path, list[Path]] = {}
    for path in candidates:
        if not path.is_file():
            continue
        match = pattern.match(path.name)
        if match is None:
            continue
        original = path.with_name(match.group("orig"))
        if target.is_file() and original != target:
            continue
        found.setdefault(original, []).append(path)

    return {original: sorted(paths) for original, paths in sorted(found.items())}


def restore_backups(
    target: Path,
    suffix: str,
    dry_run: bool = False,
    clean: bool = False,
) -> list[Backup]:
    """Restore every file under target from its most recent backup.

    Args:
        target: Directory (or single original file) to restore.
        suffix: Backup suffix used when the backups were written.
        dry_run: Report what would be restored without writing.
        clean: Delete all backups of a file after restoring it.

    Returns:
        The backups that were (or would be) restored.

    Raises:
        OSError: If a backup cannot be read or an original cannot be written.
    """
    restored: list[Backup] = []
    for original, backups in find_backups(target, suffix).items():
        latest = backups[-1]
        if dry_run:
            restored.append(Backup(original_path=original, backup_path=latest))
            continue

        content = latest.read_bytes()
        original.write_bytes(content)
        restored.append(Backup(original_path=original, backup_path=latest, content=content))

        if clean:
            for backup in backups:
                backup.unlink()

    return restored
