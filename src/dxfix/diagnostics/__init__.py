"""Diagnostic collection from an external type-checker.

Provides the Diagnostic model, the output parser, and the subprocess-backed
DiagnosticSource.
"""

from __future__ import annotations

from dxfix.diagnostics.base import (
    CheckerNotFoundError,
    CheckerResult,
    CheckerTimeoutError,
    CollectionResult,
    CollectionStatus,
    Diagnostic,
)
from dxfix.diagnostics.parser import (
    count_by_code,
    count_by_file,
    index_by_file,
    parse_line,
    parse_output,
)
from dxfix.diagnostics.source import DiagnosticSource

__all__ = [
    # Base types
    "CheckerNotFoundError",
    "CheckerResult",
    "CheckerTimeoutError",
    "CollectionResult",
    "CollectionStatus",
    "Diagnostic",
    # Parsing
    "count_by_code",
    "count_by_file",
    "index_by_file",
    "parse_line",
    "parse_output",
    # Source
    "DiagnosticSource",
]
