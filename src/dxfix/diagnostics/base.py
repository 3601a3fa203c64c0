"""Core diagnostic types.

Provides the structured form of a type-checker report and the typed result
of a checker invocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

CollectionStatus = Literal["ok", "timeout", "unparseable"]


class CheckerNotFoundError(Exception):
    """Raised when the checker process cannot be started at all."""

    def __init__(self, command: list[str], reason: str = "") -> None:
        self.command = command
        self.reason = reason
        program = command[0] if command else "<empty>"
        message = f"Could not start type-checker '{program}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CheckerTimeoutError(Exception):
    """Raised when a checker invocation exceeds its timeout."""

    def __init__(self, command: list[str], timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"Type-checker did not finish within {timeout:g}s")


@dataclass(frozen=True)
class Diagnostic:
    """A single problem reported by the type-checker.

    Attributes:
        file_path: Path exactly as printed by the checker (usually relative
            to the checker's working directory).
        line: 1-based line number.
        column: 1-based column number.
        code: Opaque error-class tag (e.g., "TS2345") used to route
            diagnostics to rules.
        message: Human-readable message.
    """

    file_path: str
    line: int
    column: int
    code: str
    message: str

    def resolve(self, project_root: Path) -> Path:
        """Resolve the reported path against the checker's working directory.

        Args:
            project_root: Directory the checker ran in.

        Returns:
            Absolute, normalized path of the file.
        """
        path = Path(self.file_path)
        if not path.is_absolute():
            path = project_root / path
        return path.resolve()


@dataclass(frozen=True)
class CheckerResult:
    """Raw outcome of a checker process.

    A non-zero exit code is the expected outcome whenever diagnostics exist,
    so it is carried as data rather than raised.
    """

    exit_code: int
    stdout: str
    stderr: str


@dataclass
class CollectionResult:
    """Diagnostics gathered from one checker invocation.

    Attributes:
        diagnostics: Parsed diagnostics (possibly empty or partial).
        status: "ok", or the reason collection was degraded.
        exit_code: Checker exit code, None when the process timed out.
    """

    diagnostics: list[Diagnostic] = field(default_factory=list)
    status: CollectionStatus = "ok"
    exit_code: int | None = None

    @property
    def degraded(self) -> bool:
        """Whether the diagnostic set cannot be trusted as complete."""
        return self.status != "ok"

    @property
    def count(self) -> int:
        """Number of diagnostics collected."""
        return len(self.diagnostics)
