"""Type-checker invocation.

Runs the external checker as a subprocess and turns its output into
Diagnostics. The checker exits non-zero whenever it reports problems, so a
non-zero exit with parseable output is the normal path; only failing to
start the process is fatal.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from dxfix.config import DxfixConfig
from dxfix.diagnostics.base import (
    CheckerNotFoundError,
    CheckerResult,
    CheckerTimeoutError,
    CollectionResult,
    Diagnostic,
)
from dxfix.diagnostics.parser import parse_output

logger = logging.getLogger(__name__)


class DiagnosticSource:
    """Collects diagnostics by running a type-checker command.

    Attributes:
        command: Argument vector of the checker.
        timeout: Seconds before an invocation is abandoned.
    """

    def __init__(self, command: Sequence[str], timeout: float = 300.0) -> None:
        """Initialize the source.

        Args:
            command: Checker argv (e.g., ["npx", "tsc", "--noEmit"]).
            timeout: Per-invocation timeout in seconds.

        Raises:
            ValueError: If the command is empty.
        """
        if not command:
            raise ValueError("checker command must not be empty")
        self.command = list(command)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: DxfixConfig) -> DiagnosticSource:
        """Build a source from the loaded configuration."""
        return cls(config.get_checker_argv(), timeout=config.checker_timeout)

    def run_checker(
        self, project_root: Path, files: Sequence[Path] | None = None
    ) -> CheckerResult:
        """Run the checker and capture its output regardless of exit code.

        Args:
            project_root: Working directory for the checker.
            files: Optional files to restrict the check to.

        Returns:
            CheckerResult with exit code and both output streams.

        Raises:
            CheckerNotFoundError: If the process cannot be started.
            CheckerTimeoutError: If the process exceeds the timeout.
        """
        argv = self.command + [str(f) for f in files or []]
        logger.debug("Running checker: %s (cwd=%s)", " ".join(argv), project_root)
        try:
            result = subprocess.run(
                argv,
                cwd=project_root,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CheckerTimeoutError(argv, self.timeout) from e
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise CheckerNotFoundError(argv, str(e)) from e

        return CheckerResult(
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    def run(
        self, project_root: Path, files: Sequence[Path] | None = None
    ) -> CollectionResult:
        """Run the checker and parse its output, degrading instead of failing.

        A timeout or a non-zero exit without a single parseable line yields an
        empty, degraded result. Failure to start the checker still raises.

        Args:
            project_root: Working directory for the checker.
            files: Optional files to restrict the check to.

        Returns:
            CollectionResult with the parsed diagnostics and a status.

        Raises:
            CheckerNotFoundError: If the process cannot be started.
        """
        try:
            checker_result = self.run_checker(project_root, files)
        except CheckerTimeoutError as e:
            logger.warning("%s; continuing without diagnostics", e)
            return CollectionResult(status="timeout")

        diagnostics = parse_output(checker_result.stdout, checker_result.stderr)

        if checker_result.exit_code != 0 and not diagnostics:
            output = (checker_result.stderr or checker_result.stdout).strip()
            logger.warning(
                "Type-checker exited with code %d but produced no parseable diagnostics%s",
                checker_result.exit_code,
                f": {output.splitlines()[0]}" if output else "",
            )
            return CollectionResult(status="unparseable", exit_code=checker_result.exit_code)

        logger.debug(
            "Collected %d diagnostic(s) (exit code %d)",
            len(diagnostics),
            checker_result.exit_code,
        )
        return CollectionResult(
            diagnostics=diagnostics,
            status="ok",
            exit_code=checker_result.exit_code,
        )

    def collect(
        self, project_root: Path, files: Sequence[Path] | None = None
    ) -> list[Diagnostic]:
        """Collect diagnostics for the whole project or a set of files.

        Args:
            project_root: Working directory for the checker.
            files: Optional files to restrict the check to.

        Returns:
            Parsed diagnostics; empty when collection was degraded.

        Raises:
            CheckerNotFoundError: If the process cannot be started.
        """
        return self.run(project_root, files).diagnostics
