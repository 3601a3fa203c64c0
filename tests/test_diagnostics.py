"""Tests for diagnostic parsing and collection."""

from __future__ import annotations

import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from dxfix.diagnostics import (
    CheckerNotFoundError,
    CheckerTimeoutError,
    CollectionResult,
    Diagnostic,
    DiagnosticSource,
    count_by_code,
    count_by_file,
    index_by_file,
    parse_line,
    parse_output,
)

TSC_OUTPUT = """\
src/services/user.ts(12,5): error TS2339: Property 'id' does not exist on type '{}'.
src/services/user.ts(40,17): error TS18046: 'error' is of type 'unknown'.
src/routes/auth.ts(8,3): error TS2532: Object is possibly 'undefined'.

Found 3 errors in 2 files.
"""


# -----------------------------------------------------------------------------
# Parser Tests
# -----------------------------------------------------------------------------


class TestParseLine:
    """Tests for parse_line."""

    def test_parses_diagnostic(self) -> None:
        """Test a well-formed diagnostic line."""
        diagnostic = parse_line(
            "src/app.ts(3,14): error TS2345: Argument of type 'string' is not assignable."
        )
        assert diagnostic == Diagnostic(
            file_path="src/app.ts",
            line=3,
            column=14,
            code="TS2345",
            message="Argument of type 'string' is not assignable.",
        )

    def test_tolerates_carriage_return(self) -> None:
        """Test Windows line endings."""
        diagnostic = parse_line("a.ts(1,1): error TS1005: ';' expected.\r")
        assert diagnostic is not None
        assert diagnostic.message == "';' expected."

    def test_path_with_parentheses(self) -> None:
        """Test a path that itself contains parentheses."""
        diagnostic = parse_line("src/(group)/page.ts(2,7): error TS2304: Cannot find name 'x'.")
        assert diagnostic is not None
        assert diagnostic.file_path == "src/(group)/page.ts"
        assert diagnostic.line == 2

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "Found 3 errors in 2 files.",
            "src/app.ts(3,14): warning TS6133: 'x' is declared but never used.",
            "src/app.ts:3:14 - error TS2345: pretty format",
            "Version 5.4.5",
        ],
    )
    def test_ignores_other_lines(self, line: str) -> None:
        """Test that banners, summaries and other formats are ignored."""
        assert parse_line(line) is None


class TestParseOutput:
    """Tests for parse_output and grouping helpers."""

    def test_parses_multiline_output(self) -> None:
        """Test parsing a typical tsc run."""
        diagnostics = parse_output(TSC_OUTPUT)
        assert [d.code for d in diagnostics] == ["TS2339", "TS18046", "TS2532"]

    def test_scans_streams_in_order(self) -> None:
        """Test that stdout is scanned before stderr."""
        diagnostics = parse_output(
            "a.ts(1,1): error TS1: first\n",
            "b.ts(1,1): error TS2: second\n",
        )
        assert [d.file_path for d in diagnostics] == ["a.ts", "b.ts"]

    def test_count_by_code(self) -> None:
        """Test counting diagnostics per code."""
        counts = count_by_code(parse_output(TSC_OUTPUT))
        assert counts["TS2339"] == 1
        assert sum(counts.values()) == 3

    def test_count_by_file(self) -> None:
        """Test counting diagnostics per file."""
        counts = count_by_file(parse_output(TSC_OUTPUT))
        assert counts.most_common(1) == [("src/services/user.ts", 2)]

    def test_index_by_file(self, tmp_path: Path) -> None:
        """Test indexing codes by resolved path."""
        index = index_by_file(parse_output(TSC_OUTPUT), tmp_path)
        user = (tmp_path / "src" / "services" / "user.ts").resolve()
        assert index[user] == frozenset({"TS2339", "TS18046"})
        assert len(index) == 2

    def test_diagnostic_resolve_absolute(self, tmp_path: Path) -> None:
        """Test that absolute reported paths are kept."""
        absolute = tmp_path / "x.ts"
        diagnostic = Diagnostic(str(absolute), 1, 1, "TS1", "m")
        assert diagnostic.resolve(Path("/elsewhere")) == absolute.resolve()


# -----------------------------------------------------------------------------
# DiagnosticSource Tests
# -----------------------------------------------------------------------------


class TestDiagnosticSource:
    """Tests for DiagnosticSource subprocess handling."""

    def test_empty_command_rejected(self) -> None:
        """Test that an empty command is rejected."""
        with pytest.raises(ValueError):
            DiagnosticSource([])

    def test_nonzero_exit_with_diagnostics_is_normal(
        self, tmp_path: Path, canned_checker: Callable[..., str]
    ) -> None:
        """Test that a failing exit code with parseable output is a normal result."""
        source = _source(canned_checker(stdout=TSC_OUTPUT, exit_code=2))

        result = source.run(tmp_path)

        assert result.status == "ok"
        assert result.exit_code == 2
        assert result.count == 3
        assert not result.degraded

    def test_clean_run(self, tmp_path: Path, canned_checker: Callable[..., str]) -> None:
        """Test a checker that reports nothing."""
        source = _source(canned_checker(stdout="", exit_code=0))
        result = source.run(tmp_path)
        assert result == CollectionResult(diagnostics=[], status="ok", exit_code=0)

    def test_diagnostics_on_stderr(self, tmp_path: Path, canned_checker: Callable[..., str]) -> None:
        """Test that diagnostics printed to stderr are collected too."""
        source = _source(canned_checker(stderr="a.ts(1,1): error TS1005: ';' expected.\n", exit_code=1))
        assert [d.code for d in source.collect(tmp_path)] == ["TS1005"]

    def test_unparseable_output_degrades(
        self, tmp_path: Path, canned_checker: Callable[..., str], caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a non-zero exit without diagnostics degrades to empty."""
        source = _source(canned_checker(stderr="error: Cannot find module 'typescript'\n", exit_code=1))

        result = source.run(tmp_path)

        assert result.status == "unparseable"
        assert result.degraded
        assert result.diagnostics == []
        assert "no parseable diagnostics" in caplog.text

    def test_timeout_degrades(
        self, tmp_path: Path, canned_checker: Callable[..., str]
    ) -> None:
        """Test that a timeout yields an empty, degraded result."""
        source = _source(canned_checker(stdout=TSC_OUTPUT, sleep=5.0), timeout=0.5)

        result = source.run(tmp_path)

        assert result.status == "timeout"
        assert result.exit_code is None
        assert result.diagnostics == []

    def test_run_checker_timeout_raises(
        self, tmp_path: Path, canned_checker: Callable[..., str]
    ) -> None:
        """Test the raw wrapper raises on timeout."""
        source = _source(canned_checker(sleep=5.0), timeout=0.5)
        with pytest.raises(CheckerTimeoutError):
            source.run_checker(tmp_path)

    def test_missing_binary_is_fatal(self, tmp_path: Path) -> None:
        """Test that a checker that cannot be started raises."""
        source = DiagnosticSource(["dxfix-no-such-checker-binary", "--noEmit"])
        with pytest.raises(CheckerNotFoundError, match="dxfix-no-such-checker-binary"):
            source.run(tmp_path)

    def test_scoped_collection_passes_files(self, tmp_path: Path) -> None:
        """Test that the scoped variant appends files to the command line."""
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        script = bin_dir / "echo_args.py"
        script.write_text(
            "import sys\n"
            "for arg in sys.argv[1:]:\n"
            "    print(f'{arg}(1,1): error TS9999: checked')\n"
            "sys.exit(1)\n"
        )
        source = DiagnosticSource([sys.executable, str(script)])

        diagnostics = source.collect(tmp_path, [Path("src/a.ts"), Path("src/b.ts")])

        assert [d.file_path for d in diagnostics] == ["src/a.ts", "src/b.ts"]


def _source(command: str, timeout: float = 30.0) -> DiagnosticSource:
    return DiagnosticSource(shlex.split(command), timeout=timeout)
