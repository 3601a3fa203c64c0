"""Pytest configuration and fixtures for dxfix tests."""

from __future__ import annotations

import os
import shlex
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

# Set a fixed terminal width to prevent line wrapping issues in CI
# This must be set before any Rich imports
os.environ.setdefault("COLUMNS", "200")
os.environ.setdefault("LINES", "50")
# Disable Rich's terminal detection to ensure consistent output
os.environ.setdefault("TERM", "dumb")

DXFIX_ENV_VARS = [
    "DXFIX_CHECKER_COMMAND",
    "DXFIX_CHECKER_TIMEOUT",
    "DXFIX_INCLUDE_EXTENSIONS",
    "DXFIX_EXCLUDE_DIRS",
    "DXFIX_BACKUP_SUFFIX",
    "DXFIX_JOBS",
    "DXFIX_RULE_CATALOGS",
    "DXFIX_USE_BUILTIN_RULES",
    "DXFIX_PROJECT_MARKER",
]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's DXFIX_* settings out of every test."""
    for var in DXFIX_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def _script_command(script: Path) -> str:
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


@pytest.fixture
def canned_checker(tmp_path: Path) -> Callable[..., str]:
    """Factory for a checker command that prints fixed output.

    Returns:
        Function (stdout="", stderr="", exit_code=0, sleep=0.0) -> command line.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    counter = {"n": 0}

    def _make(
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        sleep: float = 0.0,
    ) -> str:
        counter["n"] += 1
        script = bin_dir / f"canned_{counter['n']}.py"
        script.write_text(
            textwrap.dedent(
                f"""
                import sys
                import time

                time.sleep({sleep!r})
                sys.stdout.write({stdout!r})
                sys.stderr.write({stderr!r})
                sys.exit({exit_code!r})
                """
            ),
            encoding="utf-8",
        )
        return _script_command(script)

    return _make


@pytest.fixture
def scanning_checker(tmp_path: Path) -> Callable[[str, str], str]:
    """Factory for a checker that reports one diagnostic per matching line.

    The checker walks every .ts file under its working directory and emits
    ``<rel>(<line>,<col>): error <code>: ...`` for each line matching the
    regex, exiting 2 when it found anything. Because it reads the files each
    time, it reflects what a run actually wrote.

    Returns:
        Function (regex, code) -> command line.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(regex: str, code: str) -> str:
        script = bin_dir / f"scan_{code}.py"
        script.write_text(
            textwrap.dedent(
                f"""
                import re
                import sys
                from pathlib import Path

                pattern = re.compile({regex!r})
                root = Path.cwd()
                found = 0
                print("Scanning project...")
                for path in sorted(root.rglob("*.ts")):
                    text = path.read_text(encoding="utf-8")
                    for lineno, line in enumerate(text.splitlines(), 1):
                        match = pattern.search(line)
                        if match:
                            rel = path.relative_to(root).as_posix()
                            print(f"{{rel}}({{lineno}},{{match.start() + 1}}): error {code}: matched")
                            found += 1
                print(f"Found {{found}} errors.")
                sys.exit(2 if found else 0)
                """
            ),
            encoding="utf-8",
        )
        return _script_command(script)

    return _make


@pytest.fixture
def ts_project(tmp_path: Path) -> Path:
    """A small TypeScript project directory with a tsconfig.json marker."""
    project = tmp_path / "project"
    (project / "src").mkdir(parents=True)
    (project / "tsconfig.json").write_text("{}\n", encoding="utf-8")
    return project
