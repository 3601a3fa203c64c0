"""dxfix CLI - Main entry point."""

from __future__ import annotations

import json
import signal
import threading
from pathlib import Path
from types import FrameType
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dxfix import __version__
from dxfix.backup import restore_backups
from dxfix.cli_utils import (
    EXIT_CANCELLED,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    EXIT_VERIFY_FAILED,
    ProjectRootNotFoundError,
    checker_option,
    find_project_root,
    json_option,
    no_builtin_option,
    parse_extensions,
    parse_step_ids,
    project_option,
    resolve_path,
    rules_option,
    timeout_option,
    wire_config,
)
from dxfix.config import DxfixConfig
from dxfix.diagnostics import CheckerNotFoundError, DiagnosticSource, count_by_code, count_by_file
from dxfix.fixers import StepRegistry, UnknownStepError, build_registry
from dxfix.logging_config import setup_logging
from dxfix.report import Reporter
from dxfix.runner import RunConfig, RunOrchestrator, TargetNotFoundError
from dxfix.verifier import VerificationResult, Verifier

app = typer.Typer(
    name="dxfix",
    help="Diagnostic-driven source rewriting - apply prioritized fix rules and verify with the type-checker.",
    add_completion=False,
)

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)


# -----------------------------------------------------------------------------
# Output Helpers
# -----------------------------------------------------------------------------


def _output_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]Success:[/green] {message}")


def _output_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def _output_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


def _output_info(message: str) -> None:
    """Print an info message."""
    console.print(message)


def _exit_error(message: str, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print error and exit."""
    _output_error(message)
    raise typer.Exit(code=exit_code)


# -----------------------------------------------------------------------------
# Version and Main Callbacks
# -----------------------------------------------------------------------------


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"dxfix version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Diagnostic-driven source rewriting - apply prioritized fix rules and verify with the type-checker."""
    pass


# -----------------------------------------------------------------------------
# Shared Helpers
# -----------------------------------------------------------------------------


def _resolve_target(path: Path) -> Path:
    """Resolve the target path, exiting if it does not exist."""
    target = resolve_path(path)
    if not target.exists():
        _exit_error(f"Target path does not exist: {target}")
    return target


def _resolve_project_root(project: Path | None, target: Path, marker: str) -> Path:
    """Pick the checker's working directory.

    An explicit --project wins; otherwise the nearest directory holding the
    project marker above the target; otherwise the target directory itself.
    """
    if project is not None:
        root = resolve_path(project)
        if not root.is_dir():
            _exit_error(f"Project directory does not exist: {root}")
        return root

    start = target if target.is_dir() else target.parent
    try:
        return find_project_root(start, marker=marker)
    except ProjectRootNotFoundError:
        return start


def _load_registry(config: DxfixConfig) -> StepRegistry:
    """Build the step registry from configured catalogs, exiting on errors."""
    try:
        return build_registry(
            config.get_catalog_paths(),
            include_builtin=config.use_builtin_rules,
        )
    except ValueError as e:
        # CatalogError is a ValueError; duplicate priorities raise plain ValueError
        _exit_error(str(e))


def _verify(
    source: DiagnosticSource | None,
    project_root: Path,
    baseline: int | None,
    dry_run: bool,
) -> VerificationResult:
    """Run verification, or explain why it was skipped."""
    if dry_run:
        return VerificationResult.skip(baseline or 0, "dry run, nothing was written")
    if source is None:
        return VerificationResult.skip(0, "diagnostics disabled (--no-diagnostics)")
    if baseline is None:
        return VerificationResult.skip(0, "no baseline diagnostic count")
    return Verifier(source).verify(project_root, baseline)


# -----------------------------------------------------------------------------
# Run Command
# -----------------------------------------------------------------------------


@app.command()
def run(
    path: Path = typer.Option(
        Path("."),
        "--path",
        help="Directory (or file) to fix. Defaults to current directory.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "--dryrun",
        "-n",
        help="Show what would change without writing anything.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show per-rule details and debug logging.",
    ),
    verify: bool = typer.Option(
        False,
        "--verify",
        help="Re-run the type-checker after writing and compare diagnostic counts.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="With --verify, exit 3 if verification fails or diagnostics remain.",
    ),
    include: str | None = typer.Option(
        None,
        "--include",
        help="Comma-separated file extensions to process (default: .ts).",
    ),
    step: str | None = typer.Option(
        None,
        "--step",
        "-s",
        help="Comma-separated step priorities to run (default: all).",
    ),
    rules: list[Path] | None = rules_option(),
    no_builtin: bool = no_builtin_option(),
    no_diagnostics: bool = typer.Option(
        False,
        "--no-diagnostics",
        help="Do not run the type-checker; diagnostic-scoped rules are skipped.",
    ),
    jobs: int | None = typer.Option(
        None,
        "--jobs",
        "-j",
        help="Worker threads per step.",
        min=1,
    ),
    checker: str | None = checker_option(),
    timeout: float | None = timeout_option(),
    project: Path | None = project_option(),
    diff: bool = typer.Option(
        False,
        "--diff",
        help="Show a unified diff of every changed file.",
    ),
    check_idempotence: bool = typer.Option(
        False,
        "--check-idempotence",
        help="Re-apply the steps to the result in memory and report rules that still fire.",
    ),
    json_output: bool = json_option(),
) -> None:
    """Apply fix steps to source files.

    Steps run in ascending priority. Each changed file is backed up next to
    the original before it is overwritten, unless --dry-run is given.
    """
    setup_logging(verbose=verbose, console=err_console)

    target = _resolve_target(path)
    config = wire_config(
        checker_command=checker,
        checker_timeout=timeout,
        include_extensions=parse_extensions(include),
        jobs=jobs,
        rule_catalogs=rules,
        use_builtin_rules=False if no_builtin else None,
        start_dir=target if target.is_dir() else target.parent,
    )
    selected_steps = parse_step_ids(step)
    project_root = _resolve_project_root(project, target, config.project_marker)
    registry = _load_registry(config)

    if strict and not verify:
        _output_warning("--strict has no effect without --verify")

    source = None if no_diagnostics else DiagnosticSource.from_config(config)
    run_config = RunConfig(
        target_path=target,
        include_extensions=tuple(config.include_extensions),
        dry_run=dry_run,
        verbose=verbose,
        verify=verify,
        selected_steps=selected_steps,
        project_root=project_root,
        jobs=config.jobs,
        collect_diagnostics=not no_diagnostics,
        check_idempotence=check_idempotence,
        exclude_dirs=tuple(config.exclude_dirs),
        backup_suffix=config.backup_suffix,
        show_diff=diff,
    )

    cancel_event = threading.Event()
    previous_handler = _install_interrupt_handler(cancel_event)
    try:
        result = RunOrchestrator(registry, source).run(run_config, cancel_event)
    except (TargetNotFoundError, UnknownStepError) as e:
        _exit_error(str(e))
    except CheckerNotFoundError as e:
        _exit_error(
            f"{e}. Install the checker or pass --checker / --no-diagnostics.",
            exit_code=EXIT_SYSTEM_ERROR,
        )
    finally:
        _restore_interrupt_handler(previous_handler)

    verification = None
    if verify and not result.cancelled:
        verification = _verify(source, project_root, result.baseline_diagnostics, dry_run)

    reporter = Reporter(run_config, result, verification)
    if json_output:
        console.print_json(json.dumps(reporter.to_dict()))
    else:
        reporter.print(console)

    if result.cancelled:
        raise typer.Exit(code=EXIT_CANCELLED)

    if strict and verification is not None and not verification.skipped:
        if not verification.success or verification.new_count > 0:
            raise typer.Exit(code=EXIT_VERIFY_FAILED)


def _install_interrupt_handler(cancel_event: threading.Event) -> Any:
    """Turn Ctrl-C into a cooperative cancellation request.

    Returns:
        The previous SIGINT handler, or None when not on the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handle(signum: int, frame: FrameType | None) -> None:  # noqa: ARG001
        if cancel_event.is_set():
            raise KeyboardInterrupt
        err_console.print("[yellow]Cancelling after the files in progress...[/yellow]")
        cancel_event.set()

    return signal.signal(signal.SIGINT, _handle)


def _restore_interrupt_handler(previous: Any) -> None:
    if previous is not None:
        signal.signal(signal.SIGINT, previous)


# -----------------------------------------------------------------------------
# Steps Command
# -----------------------------------------------------------------------------


@app.command()
def steps(
    rules: list[Path] | None = rules_option(),
    no_builtin: bool = no_builtin_option(),
    json_output: bool = json_option(),
) -> None:
    """List the registered fix steps in execution order."""
    config = wire_config(
        rule_catalogs=rules,
        use_builtin_rules=False if no_builtin else None,
    )
    registry = _load_registry(config)

    if json_output:
        result = {
            "steps": [
                {
                    "priority": s.priority,
                    "name": s.name,
                    "description": s.description,
                    "rules": [
                        {"name": r.name, "diagnostic_codes": sorted(r.diagnostic_codes)}
                        for r in s.rules
                    ],
                }
                for s in registry.all_steps()
            ]
        }
        console.print_json(json.dumps(result))
        return

    if len(registry) == 0:
        _output_info("No fix steps registered.")
        return

    table = Table(title="Fix Steps")
    table.add_column("Priority", style="cyan", justify="right")
    table.add_column("Step", style="green")
    table.add_column("Rules")
    table.add_column("Codes")

    for s in registry.all_steps():
        table.add_row(
            str(s.priority),
            escape(s.name),
            "\n".join(escape(name) for name in s.rule_names()),
            ", ".join(sorted(s.diagnostic_codes)) or "-",
        )

    console.print(table)


# -----------------------------------------------------------------------------
# Analyze Command
# -----------------------------------------------------------------------------


@app.command()
def analyze(
    path: Path = typer.Option(
        Path("."),
        "--path",
        help="Directory used to locate the project. Defaults to current directory.",
    ),
    project: Path | None = project_option(),
    checker: str | None = checker_option(),
    timeout: float | None = timeout_option(),
    top: int = typer.Option(
        10,
        "--top",
        help="Number of files to list.",
        min=1,
    ),
    json_output: bool = json_option(),
) -> None:
    """Run the type-checker and summarize diagnostics by code and by file."""
    setup_logging(console=err_console)

    target = _resolve_target(path)
    config = wire_config(
        checker_command=checker,
        checker_timeout=timeout,
        start_dir=target if target.is_dir() else target.parent,
    )
    project_root = _resolve_project_root(project, target, config.project_marker)
    source = DiagnosticSource.from_config(config)

    try:
        collection = source.run(project_root)
    except CheckerNotFoundError as e:
        _exit_error(str(e), exit_code=EXIT_SYSTEM_ERROR)

    by_code = count_by_code(collection.diagnostics)
    by_file = count_by_file(collection.diagnostics)

    if json_output:
        result: dict[str, Any] = {
            "project_root": str(project_root),
            "status": collection.status,
            "total": collection.count,
            "by_code": dict(by_code.most_common()),
            "by_file": dict(by_file.most_common(top)),
        }
        console.print_json(json.dumps(result))
        return

    if collection.degraded:
        _output_warning(f"Diagnostic collection {collection.status}; counts may be incomplete")

    _output_info(f"[bold]{collection.count}[/bold] diagnostic(s) in {escape(str(project_root))}")
    if not collection.diagnostics:
        return

    code_table = Table(title="Diagnostics by Code")
    code_table.add_column("Code", style="cyan")
    code_table.add_column("Count", justify="right")
    for code, count in by_code.most_common():
        code_table.add_row(code, str(count))
    console.print(code_table)

    file_table = Table(title=f"Top {min(top, len(by_file))} Files")
    file_table.add_column("File", style="green")
    file_table.add_column("Count", justify="right")
    for file_path, count in by_file.most_common(top):
        file_table.add_row(escape(file_path), str(count))
    console.print(file_table)


# -----------------------------------------------------------------------------
# Restore Command
# -----------------------------------------------------------------------------


@app.command()
def restore(
    path: Path = typer.Option(
        Path("."),
        "--path",
        help="Directory (or file) to restore. Defaults to current directory.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "--dryrun",
        "-n",
        help="Show what would be restored without writing anything.",
    ),
    clean: bool = typer.Option(
        False,
        "--clean",
        help="Delete backups after restoring from them.",
    ),
    json_output: bool = json_option(),
) -> None:
    """Restore files from their most recent dxfix backups."""
    target = _resolve_target(path)
    config = wire_config(start_dir=target if target.is_dir() else target.parent)

    try:
        restored = restore_backups(
            target, config.backup_suffix, dry_run=dry_run, clean=clean and not dry_run
        )
    except OSError as e:
        _exit_error(f"Restore failed: {e}", exit_code=EXIT_SYSTEM_ERROR)

    if json_output:
        result = {
            "dry_run": dry_run,
            "restored": [
                {"path": str(b.original_path), "backup": str(b.backup_path)} for b in restored
            ],
        }
        console.print_json(json.dumps(result))
        return

    if not restored:
        _output_info("No backups found.")
        return

    verb = "Would restore" if dry_run else "Restored"
    for backup in restored:
        _output_info(f"  {verb} {escape(str(backup.original_path))} from {escape(backup.backup_path.name)}")
    if not dry_run:
        _output_success(f"Restored {len(restored)} file(s)")
