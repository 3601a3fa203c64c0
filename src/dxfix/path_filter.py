"""Candidate file discovery.

Finds source files to rewrite while filtering out dependency, vendor and
build directories.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from dxfix.config import DEFAULT_EXCLUDE_DIRS

IGNORED_DIRS = frozenset(DEFAULT_EXCLUDE_DIRS)


def _should_skip_path(rel_path: Path, ignored: frozenset[str]) -> bool:
    """Check if any directory component of a relative path is ignored."""
    return bool(set(rel_path.parts[:-1]) & ignored)


def matches_extension(path: Path, include_extensions: Iterable[str]) -> bool:
    """Check a file name against suffixes such as ".ts" or ".test.ts"."""
    return any(path.name.endswith(ext) for ext in include_extensions)


def discover_files(
    target: Path,
    include_extensions: Iterable[str],
    exclude_dirs: Iterable[str] | None = None,
) -> list[Path]:
    """Find candidate files under a target directory.

    A target that is itself a file is returned as-is when its name matches.

    Args:
        target: Directory (or single file) to scan.
        include_extensions: File name suffixes to keep.
        exclude_dirs: Directory names to skip. Defaults to IGNORED_DIRS.

    Returns:
        Sorted list of absolute file paths.
    """
    extensions = list(include_extensions)
    ignored = frozenset(exclude_dirs) if exclude_dirs is not None else IGNORED_DIRS
    target = target.resolve()

    if target.is_file():
        return [target] if matches_extension(target, extensions) else []

    files: list[Path] = []
    for path in target.rglob("*"):
        if not path.is_file() or not matches_extension(path, extensions):
            continue

        try:
            rel_path = path.relative_to(target)
        except ValueError:
            continue

        if _should_skip_path(rel_path, ignored):
            continue

        files.append(path)

    return sorted(files)
