"""Run reports.

Turns a RunResult (and optional VerificationResult) into rich renderables,
plain text, or a JSON-serialisable dict. Reporting is a pure function of its
inputs: nothing here touches the filesystem or runs the checker.
"""

from __future__ import annotations

import difflib
import io
from pathlib import Path
from typing import Any

from rich.console import Console, RenderableType
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from dxfix.runner import FileOutcome, RunConfig, RunResult
from dxfix.verifier import VerificationResult


def unified_diff(outcome: FileOutcome, base: Path | None = None) -> str:
    """Unified diff between a file's original and final text.

    Args:
        outcome: The file outcome.
        base: Directory paths in the diff header are made relative to.

    Returns:
        The diff text (empty when the file did not change).
    """
    name = _display_path(outcome.file_path, base)
    return "".join(
        difflib.unified_diff(
            outcome.original_text.splitlines(keepends=True),
            outcome.final_text.splitlines(keepends=True),
            fromfile=f"a/{name}",
            tofile=f"b/{name}",
        )
    )


def _display_path(path: Path, base: Path | None) -> str:
    if base is not None:
        try:
            return path.relative_to(base).as_posix()
        except ValueError:
            pass
    return path.as_posix()


class Reporter:
    """Formats the result of a run.

    Attributes:
        config: The run configuration.
        result: The run result.
        verification: Verification outcome, when verification was attempted.
    """

    def __init__(
        self,
        config: RunConfig,
        result: RunResult,
        verification: VerificationResult | None = None,
    ) -> None:
        self.config = config
        self.result = result
        self.verification = verification
        target = config.target_path.resolve()
        self._base = target.parent if target.is_file() else target

    @property
    def _modified_label(self) -> str:
        return "Files (would modify)" if self.config.dry_run else "Files modified"

    def renderables(self) -> list[RenderableType]:
        """Build the report as a list of rich renderables."""
        parts: list[RenderableType] = [self._header()]

        if self.result.steps_run:
            parts.append(self._step_table())
        if self.config.verbose and self.result.stats.fixes_by_rule:
            parts.append(self._rule_table())

        changed = self.result.changed_outcomes
        if changed:
            parts.append(self._changed_files(changed))
            if self.config.show_diff:
                parts.extend(self._diffs(changed))

        errored = self.result.errored_outcomes
        rule_errors = [e for o in self.result.outcomes for e in o.rule_errors]
        if errored or rule_errors:
            parts.append(self._errors(errored, rule_errors))

        if self.result.non_idempotent_rules:
            parts.append(self._idempotence())

        if self.verification is not None:
            parts.append(self._verification(self.verification))

        parts.append(self._summary())
        return parts

    def render_text(self, width: int = 100) -> str:
        """Render the report to plain text."""
        console = Console(
            record=True,
            width=width,
            color_system=None,
            force_terminal=False,
            file=io.StringIO(),
        )
        for part in self.renderables():
            console.print(part)
        return console.export_text()

    def print(self, console: Console) -> None:
        """Print the report to a console."""
        for part in self.renderables():
            console.print(part)

    def to_dict(self) -> dict[str, Any]:
        """Build a JSON-serialisable report."""
        stats = self.result.stats
        data: dict[str, Any] = {
            "target_path": str(self.config.target_path),
            "dry_run": self.config.dry_run,
            "steps": [
                {"priority": s.priority, "name": s.name, "fixes": stats.fixes_by_step.get(s.name, 0)}
                for s in self.result.steps_run
            ],
            "stats": {
                "total_files": stats.total_files,
                "files_modified": stats.files_modified,
                "files_skipped": stats.files_skipped,
                "files_errored": stats.files_errored,
                "total_fixes": stats.total_fixes,
                "fixes_by_step": dict(stats.fixes_by_step),
                "fixes_by_rule": dict(stats.fixes_by_rule),
            },
            "files": [
                {
                    "path": str(o.file_path),
                    "fixes": o.total_fixes,
                    "fix_counts": dict(o.fix_counts),
                    "backup_path": str(o.backup_path) if o.backup_path else None,
                }
                for o in self.result.changed_outcomes
            ],
            "errors": [
                {"path": str(o.file_path), "error": o.error}
                for o in self.result.errored_outcomes
            ],
            "rule_errors": [e for o in self.result.outcomes for e in o.rule_errors],
            "cancelled": self.result.cancelled,
            "files_processed": self.result.files_processed,
            "baseline_diagnostics": self.result.baseline_diagnostics,
            "diagnostics_status": self.result.diagnostics_status,
            "non_idempotent_rules": dict(self.result.non_idempotent_rules),
            "verification": self.verification.to_dict() if self.verification else None,
        }
        if self.config.show_diff:
            for entry, outcome in zip(data["files"], self.result.changed_outcomes, strict=True):
                entry["diff"] = unified_diff(outcome, self._base)
        return data

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def _header(self) -> RenderableType:
        mode = " (dry run)" if self.config.dry_run else ""
        lines = [f"[bold]dxfix run{mode}[/bold]", f"Target: {escape(str(self.config.target_path))}"]
        lines.append(f"Extensions: {', '.join(self.config.include_extensions)}")
        if self.result.diagnostics_status is not None:
            baseline = self.result.baseline_diagnostics
            if baseline is not None:
                lines.append(f"Diagnostics before run: {baseline}")
            else:
                lines.append(
                    f"[yellow]Diagnostics unavailable ({self.result.diagnostics_status});"
                    " diagnostic-scoped rules skipped[/yellow]"
                )
        return Text.from_markup("\n".join(lines))

    def _step_table(self) -> Table:
        table = Table(title="Fixes by Step")
        table.add_column("Priority", style="cyan", justify="right")
        table.add_column("Step", style="green")
        table.add_column("Fixes", justify="right")

        for step in self.result.steps_run:
            table.add_row(
                str(step.priority),
                escape(step.name),
                str(self.result.stats.fixes_by_step.get(step.name, 0)),
            )
        return table

    def _rule_table(self) -> Table:
        table = Table(title="Fixes by Rule")
        table.add_column("Rule", style="green")
        table.add_column("Fixes", justify="right")

        for name, count in sorted(
            self.result.stats.fixes_by_rule.items(), key=lambda item: (-item[1], item[0])
        ):
            table.add_row(escape(name), str(count))
        return table

    def _changed_files(self, changed: list[FileOutcome]) -> Table:
        title = "Files that would be modified" if self.config.dry_run else "Modified Files"
        table = Table(title=title)
        table.add_column("File", style="cyan")
        table.add_column("Fixes", justify="right")
        if not self.config.dry_run:
            table.add_column("Backup", style="dim")

        for outcome in changed:
            row = [escape(_display_path(outcome.file_path, self._base)), str(outcome.total_fixes)]
            if not self.config.dry_run:
                row.append(escape(outcome.backup_path.name) if outcome.backup_path else "-")
            table.add_row(*row)
        return table

    def _diffs(self, changed: list[FileOutcome]) -> list[RenderableType]:
        return [
            Syntax(unified_diff(outcome, self._base), "diff", theme="ansi_dark", word_wrap=True)
            for outcome in changed
        ]

    def _errors(self, errored: list[FileOutcome], rule_errors: list[str]) -> RenderableType:
        lines = ["[bold red]Errors:[/bold red]"]
        lines.extend(f"  [red]-[/red] {escape(o.error or '')}" for o in errored)
        lines.extend(f"  [red]-[/red] {escape(e)}" for e in rule_errors)
        return Text.from_markup("\n".join(lines))

    def _idempotence(self) -> RenderableType:
        lines = ["[bold yellow]Rules that still change their own output:[/bold yellow]"]
        lines.extend(
            f"  - {escape(name)}: {count}"
            for name, count in sorted(self.result.non_idempotent_rules.items())
        )
        return Text.from_markup("\n".join(lines))

    def _verification(self, v: VerificationResult) -> RenderableType:
        if v.skipped:
            return Text.from_markup(
                f"[yellow]Verification skipped:[/yellow] {escape(v.reason or 'unknown reason')}"
            )
        status = "[green]passed[/green]" if v.success else "[red]failed[/red]"
        return Text.from_markup(
            f"[bold]Verification {status}[/bold]\n"
            f"  Diagnostics before: {v.previous_count}\n"
            f"  Diagnostics after: {v.new_count}\n"
            f"  Resolved: {v.resolved_count}"
        )

    def _summary(self) -> RenderableType:
        stats = self.result.stats
        lines = ["[bold]Summary[/bold]"]
        if self.result.cancelled:
            lines.append(
                f"  [yellow]Cancelled during step '{escape(self.result.cancelled_step or '')}'"
                f" after {self.result.files_processed}/{stats.total_files} files[/yellow]"
            )
        lines.extend(
            [
                f"  Files scanned: {stats.total_files}",
                f"  {self._modified_label}: {stats.files_modified}",
                f"  Files skipped: {stats.files_skipped}",
                f"  Files errored: {stats.files_errored}",
                f"  Total fixes: {stats.total_fixes}",
            ]
        )
        return Text.from_markup("\n".join(lines))

