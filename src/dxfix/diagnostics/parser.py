"""Parsing of type-checker output.

Only lines of the form ``<path>(<line>,<col>): error <code>: <message>`` are
diagnostics; banners, summaries and everything else are ignored.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from dxfix.diagnostics.base import Diagnostic

DIAGNOSTIC_LINE = re.compile(
    r"^(?P<path>.+?)\((?P<line>\d+),(?P<column>\d+)\): "
    r"error (?P<code>\S+): (?P<message>.*)$"
)


def parse_line(line: str) -> Diagnostic | None:
    """Parse a single output line.

    Args:
        line: One line of checker output.

    Returns:
        The Diagnostic, or None if the line does not match the grammar.
    """
    match = DIAGNOSTIC_LINE.match(line.rstrip("\r\n"))
    if match is None:
        return None
    return Diagnostic(
        file_path=match.group("path").strip(),
        line=int(match.group("line")),
        column=int(match.group("column")),
        code=match.group("code"),
        message=match.group("message").strip(),
    )


def parse_output(*outputs: str) -> list[Diagnostic]:
    """Parse one or more captured output streams.

    Args:
        *outputs: Text streams in the order they should be scanned.

    Returns:
        Diagnostics in output order.
    """
    diagnostics: list[Diagnostic] = []
    for output in outputs:
        for line in output.splitlines():
            diagnostic = parse_line(line)
            if diagnostic is not None:
                diagnostics.append(diagnostic)
    return diagnostics


def index_by_file(
    diagnostics: Iterable[Diagnostic], project_root: Path
) -> dict[Path, frozenset[str]]:
    """Map each reported file to the set of codes outstanding in it.

    Args:
        diagnostics: Diagnostics to index.
        project_root: Directory the checker ran in.

    Returns:
        Mapping of resolved absolute path to diagnostic codes.
    """
    codes: dict[Path, set[str]] = {}
    for diagnostic in diagnostics:
        codes.setdefault(diagnostic.resolve(project_root), set()).add(diagnostic.code)
    return {path: frozenset(found) for path, found in codes.items()}


def count_by_code(diagnostics: Iterable[Diagnostic]) -> Counter[str]:
    """Count diagnostics per code."""
    return Counter(d.code for d in diagnostics)


def count_by_file(diagnostics: Iterable[Diagnostic]) -> Counter[str]:
    """Count diagnostics per reported file path."""
    return Counter(d.file_path for d in diagnostics)
