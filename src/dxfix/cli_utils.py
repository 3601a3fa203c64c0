"""CLI utility functions for dxfix.

Provides helper functions for:
- Config wiring: Extracting Typer CLI options and passing to load_config
- Path resolution: Finding the checker's project root by its marker file
- Option parsing: Step selections and extension lists
- Error formatting: Consistent user-friendly error messages with exit codes
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, NoReturn

import typer

from dxfix.config import DxfixConfig, load_config

# Exit code conventions
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (bad input, missing target, bad catalog, etc.)
EXIT_SYSTEM_ERROR = 2  # System error (checker missing, permissions, etc.)
EXIT_VERIFY_FAILED = 3  # --verify --strict and diagnostics remain or regressed
EXIT_CANCELLED = 130  # Interrupted; partial progress was written


class ProjectRootNotFoundError(Exception):
    """Raised when project root cannot be found."""

    def __init__(self, start_dir: Path, marker: str = "tsconfig.json") -> None:
        self.start_dir = start_dir
        self.marker = marker
        super().__init__(
            f"Could not find project root (no '{marker}' found). "
            f"Searched from: {start_dir}"
        )


# -----------------------------------------------------------------------------
# Error Formatting Helpers
# -----------------------------------------------------------------------------


def error(msg: str, *, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print an error message and exit with the given exit code.

    Args:
        msg: The error message to display.
        exit_code: Exit code to use (default: EXIT_USER_ERROR=1).

    Raises:
        typer.Exit: Always raises to exit the program.
    """
    styled_prefix = typer.style("Error:", fg=typer.colors.RED, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)
    raise typer.Exit(code=exit_code)


# -----------------------------------------------------------------------------
# Path Resolution Helpers
# -----------------------------------------------------------------------------


def find_project_root(
    start_dir: Path | None = None,
    marker: str = "tsconfig.json",
) -> Path:
    """Find the checker's project root by looking for a marker file.

    Traverses up the directory tree from start_dir looking for a directory
    containing the marker (default: tsconfig.json).

    Args:
        start_dir: Directory to start searching from. Defaults to cwd.
        marker: Name of the marker file or directory.

    Returns:
        Path to the project root (directory containing the marker).

    Raises:
        ProjectRootNotFoundError: If no project root is found.
        PermissionError: If a directory cannot be accessed.
    """
    current = (start_dir or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    original_start = current

    while True:
        marker_path = current / marker

        try:
            if marker_path.exists():
                return current
        except PermissionError as e:
            raise PermissionError(
                f"Permission denied when checking for project root at: {current}"
            ) from e

        parent = current.parent
        if parent == current:
            raise ProjectRootNotFoundError(original_start, marker)

        current = parent


def resolve_path(
    path: str | Path,
    base_path: Path | None = None,
) -> Path:
    """Resolve a path relative to a base path.

    Args:
        path: The path to resolve.
        base_path: Base path to resolve relative paths from. Defaults to cwd.

    Returns:
        Resolved absolute Path.
    """
    p = Path(path)
    base = base_path or Path.cwd()

    return p.resolve() if p.is_absolute() else (base / p).resolve()


# -----------------------------------------------------------------------------
# Option Parsing Helpers
# -----------------------------------------------------------------------------


def parse_step_ids(value: str | None) -> frozenset[int] | None:
    """Parse a --step value such as "1,3,5".

    Args:
        value: Comma-separated priorities, or None for all steps.

    Returns:
        Selected priorities, or None when no selection was given.

    Raises:
        typer.Exit: If an entry is not an integer.
    """
    if value is None:
        return None

    ids: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            error(f"Invalid step id '{part}'. Use comma-separated priorities, e.g. --step 1,3")
    if not ids:
        error("--step requires at least one step id")
    return frozenset(ids)


def parse_extensions(value: str | None) -> list[str] | None:
    """Parse an --include value such as "ts,.tsx" into [".ts", ".tsx"].

    Returns:
        Normalised extensions, or None when no value was given.
    """
    if value is None:
        return None

    extensions = []
    for part in value.split(","):
        part = part.strip()
        if part:
            extensions.append(part if part.startswith(".") else f".{part}")
    return extensions or None


# -----------------------------------------------------------------------------
# Config Wiring Helper
# -----------------------------------------------------------------------------


def wire_config(
    checker_command: str | None = None,
    checker_timeout: float | None = None,
    include_extensions: list[str] | None = None,
    jobs: int | None = None,
    rule_catalogs: list[Path] | None = None,
    use_builtin_rules: bool | None = None,
    start_dir: Path | None = None,
) -> DxfixConfig:
    """Wire CLI options to load_config with appropriate overrides.

    Catalogs given on the command line are appended to the configured ones
    rather than replacing them.

    Args:
        checker_command: Override for the type-checker command line.
        checker_timeout: Override for the checker timeout in seconds.
        include_extensions: Override for the file extensions to process.
        jobs: Override for the worker count.
        rule_catalogs: Extra rule catalogs from the command line.
        use_builtin_rules: Override for loading the built-in catalog.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved DxfixConfig instance.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    cli_overrides: dict[str, Any] = {}

    if checker_command is not None:
        cli_overrides["checker_command"] = checker_command
    if checker_timeout is not None:
        cli_overrides["checker_timeout"] = checker_timeout
    if include_extensions is not None:
        cli_overrides["include_extensions"] = include_extensions
    if jobs is not None:
        cli_overrides["jobs"] = jobs
    if use_builtin_rules is not None:
        cli_overrides["use_builtin_rules"] = use_builtin_rules

    try:
        config = load_config(cli_overrides=cli_overrides, start_dir=start_dir)
    except ValueError as e:
        error(f"Invalid configuration: {e}", exit_code=EXIT_USER_ERROR)

    if rule_catalogs:
        config.rule_catalogs = config.rule_catalogs + [
            str(resolve_path(p)) for p in rule_catalogs
        ]
    return config


# -----------------------------------------------------------------------------
# Typer Option Factory Functions
# -----------------------------------------------------------------------------
# Typer consumes Option objects when decorating commands, so each command
# needs a fresh instance.


def rules_option() -> Any:
    """Create a Typer Option for --rules / -r."""
    return typer.Option(
        None,
        "--rules",
        "-r",
        help="Extra YAML rule catalog (repeatable).",
    )


def no_builtin_option() -> Any:
    """Create a Typer Option for --no-builtin."""
    return typer.Option(
        False,
        "--no-builtin",
        help="Do not load the built-in TypeScript catalog.",
    )


def project_option() -> Any:
    """Create a Typer Option for --project / -p."""
    return typer.Option(
        None,
        "--project",
        "-p",
        help="Directory the type-checker runs in (default: nearest tsconfig.json).",
    )


def checker_option() -> Any:
    """Create a Typer Option for --checker."""
    return typer.Option(
        None,
        "--checker",
        help="Type-checker command line (default: npx tsc --noEmit --skipLibCheck).",
    )


def timeout_option() -> Any:
    """Create a Typer Option for --timeout."""
    return typer.Option(
        None,
        "--timeout",
        help="Seconds before a checker invocation is abandoned.",
        min=1.0,
    )


def json_option() -> Any:
    """Create a Typer Option for --json."""
    return typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    )
