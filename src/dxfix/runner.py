"""Run orchestration.

Drives the file transformer over every candidate file for every selected
step, in ascending priority, then writes the results (with backups) or
leaves the filesystem untouched in dry-run mode.

Within one step, files are independent and may be processed by a thread
pool; results are merged on the calling thread after the map, so no worker
ever touches shared state.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from dxfix.backup import Backup, create_backup, make_timestamp
from dxfix.config import DEFAULT_EXCLUDE_DIRS
from dxfix.diagnostics import (
    CheckerNotFoundError,
    CollectionResult,
    DiagnosticSource,
    index_by_file,
)
from dxfix.fixers import FileTransformer, FixStep, StepRegistry, TransformResult
from dxfix.path_filter import discover_files

logger = logging.getLogger(__name__)


class TargetNotFoundError(Exception):
    """Raised when the run's target path does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Target path does not exist: {path}")


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one run.

    Attributes:
        target_path: Directory (or single file) to rewrite.
        include_extensions: File name suffixes to process.
        dry_run: Compute and report changes without writing anything.
        verbose: Report per-rule detail.
        verify: Re-run the checker after writing and compare counts.
        selected_steps: Priorities to run; None runs every step.
        project_root: Working directory for the checker. Defaults to the
            target directory.
        jobs: Worker threads per step (1 processes files sequentially).
        collect_diagnostics: Whether the checker may be run at all.
        check_idempotence: Re-apply the steps to the final text in memory and
            report rules that still fire.
        exclude_dirs: Directory names never scanned.
        backup_suffix: Suffix for backup files.
        show_diff: Ask the reporter to include unified diffs.
    """

    target_path: Path
    include_extensions: tuple[str, ...] = (".ts",)
    dry_run: bool = False
    verbose: bool = False
    verify: bool = False
    selected_steps: frozenset[int] | None = None
    project_root: Path | None = None
    jobs: int = 1
    collect_diagnostics: bool = True
    check_idempotence: bool = False
    exclude_dirs: tuple[str, ...] = tuple(DEFAULT_EXCLUDE_DIRS)
    backup_suffix: str = ".dxfix-backup-{timestamp}"
    show_diff: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_path", Path(self.target_path))
        object.__setattr__(self, "include_extensions", tuple(self.include_extensions))
        object.__setattr__(self, "exclude_dirs", tuple(self.exclude_dirs))
        if self.selected_steps is not None:
            object.__setattr__(self, "selected_steps", frozenset(self.selected_steps))
        if self.jobs < 1:
            raise ValueError("jobs must be a positive integer")

    def get_project_root(self) -> Path:
        """Directory the checker runs in."""
        if self.project_root is not None:
            return Path(self.project_root).resolve()
        target = self.target_path.resolve()
        return target.parent if target.is_file() else target


@dataclass
class FileOutcome:
    """Everything a run did to one file.

    Attributes:
        file_path: The file.
        original_text: Text loaded at the start of the run.
        final_text: Text after every step.
        fix_counts: Fixes per rule name.
        step_counts: Fixes per step name.
        error: Read/write failure, if any. Errored files are excluded from
            fix statistics.
        backup_path: Backup written before the file was overwritten.
        rule_errors: Rules that raised on this file.
    """

    file_path: Path
    original_text: str
    final_text: str
    fix_counts: dict[str, int] = field(default_factory=dict)
    step_counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    backup_path: Path | None = None
    rule_errors: list[str] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        """Whether the final text differs from the original."""
        return self.final_text != self.original_text

    @property
    def total_fixes(self) -> int:
        """Sum of the file's rule counts."""
        return sum(self.fix_counts.values())


@dataclass
class RunStats:
    """Aggregated statistics of a run.

    Invariant: sum(fixes_by_rule) == total_fixes == sum(fixes_by_step).
    """

    total_files: int = 0
    files_modified: int = 0
    total_fixes: int = 0
    fixes_by_step: dict[str, int] = field(default_factory=dict)
    fixes_by_rule: dict[str, int] = field(default_factory=dict)
    files_errored: int = 0

    @property
    def files_skipped(self) -> int:
        """Files scanned but neither modified nor errored."""
        return max(self.total_files - self.files_modified - self.files_errored, 0)

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Iterable[FileOutcome],
        total_files: int | None = None,
        step_names: Iterable[str] = (),
    ) -> RunStats:
        """Reduce file outcomes into run statistics.

        Args:
            outcomes: Outcomes of the files that were loaded.
            total_files: Number of files scanned. Defaults to the number of
                outcomes.
            step_names: Steps that ran; each gets an entry even with zero fixes.

        Returns:
            The aggregated RunStats.
        """
        outcomes = list(outcomes)
        stats = cls(
            total_files=len(outcomes) if total_files is None else total_files,
            fixes_by_step={name: 0 for name in step_names},
        )
        for outcome in outcomes:
            if outcome.error is not None:
                stats.files_errored += 1
                continue
            if outcome.modified:
                stats.files_modified += 1
            for name, count in outcome.fix_counts.items():
                if count:
                    stats.fixes_by_rule[name] = stats.fixes_by_rule.get(name, 0) + count
                    stats.total_fixes += count
            for name, count in outcome.step_counts.items():
                stats.fixes_by_step[name] = stats.fixes_by_step.get(name, 0) + count
        return stats

    def merge(self, other: RunStats) -> RunStats:
        """Combine two partial statistics (associative and commutative)."""
        fixes_by_step = dict(self.fixes_by_step)
        for name, count in other.fixes_by_step.items():
            fixes_by_step[name] = fixes_by_step.get(name, 0) + count
        fixes_by_rule = dict(self.fixes_by_rule)
        for name, count in other.fixes_by_rule.items():
            fixes_by_rule[name] = fixes_by_rule.get(name, 0) + count
        return RunStats(
            total_files=self.total_files + other.total_files,
            files_modified=self.files_modified + other.files_modified,
            total_fixes=self.total_fixes + other.total_fixes,
            fixes_by_step=fixes_by_step,
            fixes_by_rule=fixes_by_rule,
            files_errored=self.files_errored + other.files_errored,
        )

    def is_consistent(self) -> bool:
        """Check the statistics invariant."""
        return (
            sum(self.fixes_by_rule.values())
            == self.total_fixes
            == sum(self.fixes_by_step.values())
        )


@dataclass
class RunResult:
    """Result of a run.

    Attributes:
        config: The run's configuration.
        stats: Aggregated statistics.
        outcomes: Outcomes of files that changed, errored, or hit rule errors,
            sorted by path.
        steps_run: Steps that were selected, in execution order.
        files_processed: Files handled in the last step that ran (equal to
            stats.total_files unless the run was cancelled).
        cancelled: Whether the run stopped early.
        cancelled_step: Step during which the run stopped.
        baseline_diagnostics: Diagnostic count before any change, when
            collected successfully.
        diagnostics_status: Status of the up-front collection, None when the
            checker was not run.
        non_idempotent_rules: Rules that still fired on their own output.
    """

    config: RunConfig
    stats: RunStats
    outcomes: list[FileOutcome] = field(default_factory=list)
    steps_run: list[FixStep] = field(default_factory=list)
    files_processed: int = 0
    cancelled: bool = False
    cancelled_step: str | None = None
    baseline_diagnostics: int | None = None
    diagnostics_status: str | None = None
    non_idempotent_rules: dict[str, int] = field(default_factory=dict)

    @property
    def changed_outcomes(self) -> list[FileOutcome]:
        """Outcomes of files that were (or would be) modified."""
        return [o for o in self.outcomes if o.error is None and o.modified]

    @property
    def errored_outcomes(self) -> list[FileOutcome]:
        """Outcomes of files that could not be read or written."""
        return [o for o in self.outcomes if o.error is not None]


@dataclass
class _WorkingFile:
    """In-memory working copy of one file during a run."""

    path: Path
    original_bytes: bytes
    original_text: str
    text: str
    written_text: str
    fix_counts: dict[str, int] = field(default_factory=dict)
    step_counts: dict[str, int] = field(default_factory=dict)
    rule_errors: list[str] = field(default_factory=list)
    error: str | None = None
    backup: Backup | None = None

    def to_outcome(self) -> FileOutcome:
        return FileOutcome(
            file_path=self.path,
            original_text=self.original_text,
            final_text=self.text,
            fix_counts=dict(self.fix_counts),
            step_counts=dict(self.step_counts),
            error=self.error,
            backup_path=self.backup.backup_path if self.backup else None,
            rule_errors=list(self.rule_errors),
        )


@dataclass
class _FileStepResult:
    """What a worker hands back for one file in one step."""

    path: Path
    loaded: _WorkingFile | None = None
    transform: TransformResult | None = None
    error: str | None = None
    cancelled: bool = False


def _load_file(path: Path) -> _WorkingFile:
    """Read a file, keeping its exact bytes for the backup.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not UTF-8 text.
    """
    raw = path.read_bytes()
    text = raw.decode("utf-8")
    return _WorkingFile(
        path=path,
        original_bytes=raw,
        original_text=text,
        text=text,
        written_text=text,
    )


class RunOrchestrator:
    """Runs selected fix steps over a set of files.

    Supports:
    - Ordered, prioritized steps
    - Diagnostic-scoped rules with up-front collection
    - Parallel per-file processing within a step
    - Dry-run, backups and cooperative cancellation
    """

    def __init__(
        self,
        registry: StepRegistry,
        source: DiagnosticSource | None = None,
        transformer: FileTransformer | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            registry: Steps available to runs.
            source: Checker used for scoped rules and baselines. None disables
                diagnostics entirely.
            transformer: File transformer (a default one is created if omitted).
        """
        self.registry = registry
        self.source = source
        self.transformer = transformer or FileTransformer()

    def run(
        self,
        config: RunConfig,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        """Execute a run.

        Args:
            config: Run configuration.
            cancel_event: Checked between files; when set the run stops,
                keeps (and writes) what it has computed, and reports itself
                as cancelled.

        Returns:
            RunResult with aggregated statistics.

        Raises:
            TargetNotFoundError: If the target path does not exist.
            UnknownStepError: If a selected priority is not registered.
            CheckerNotFoundError: If diagnostics are needed and the checker
                cannot be started. Raised before any file is touched.
        """
        target = config.target_path.resolve()
        if not target.exists():
            raise TargetNotFoundError(target)

        steps = self.registry.steps_by_priority(config.selected_steps)
        project_root = config.get_project_root()
        cancel_event = cancel_event or threading.Event()

        files = discover_files(target, config.include_extensions, config.exclude_dirs)
        logger.info(
            "Found %d file(s) under %s; running %d step(s)", len(files), target, len(steps)
        )

        result = RunResult(config=config, stats=RunStats(), steps_run=steps)

        # Diagnostics, collected once up front
        scoped_steps = [s for s in steps if s.is_diagnostic_scoped]
        codes_index: dict[Path, frozenset[str]] | None = None
        if self.source is not None and config.collect_diagnostics and (
            scoped_steps or config.verify
        ):
            collection = self.source.run(project_root)
            result.diagnostics_status = collection.status
            if not collection.degraded:
                result.baseline_diagnostics = collection.count
            codes_index = self._index(collection, project_root)
        elif scoped_steps:
            logger.info("Diagnostics disabled; diagnostic-scoped rules will be skipped")

        working: dict[Path, _WorkingFile] = {}
        timestamp = make_timestamp()

        for step in steps:
            if cancel_event.is_set():
                result.cancelled = True
                result.cancelled_step = step.name
                result.files_processed = 0
                logger.warning("Cancelled before step '%s'", step.name)
                break

            if (
                step.is_diagnostic_scoped
                and step is not scoped_steps[0]
                and codes_index is not None
                and self.source is not None
                and not config.dry_run
            ):
                # Positions and codes go stale once files change; write and re-check
                self._flush(working, config, timestamp)
                try:
                    codes_index = self._index(self.source.run(project_root), project_root)
                except CheckerNotFoundError as e:
                    logger.warning(
                        "Re-checking diagnostics failed (%s); diagnostic-scoped rules will be skipped",
                        e,
                    )
                    codes_index = {}

            logger.info("Step %d: %s", step.priority, step.name)
            processed = self._run_step(step, files, working, codes_index, config, cancel_event)
            result.files_processed = processed

            if processed < len(files):
                result.cancelled = True
                result.cancelled_step = step.name
                logger.warning(
                    "Cancelled during step '%s' after %d/%d files", step.name, processed, len(files)
                )
                break

        if not steps:
            result.files_processed = len(files)

        if not config.dry_run:
            self._flush(working, config, timestamp)

        if config.check_idempotence:
            result.non_idempotent_rules = self._check_idempotence(
                steps, working.values(), codes_index
            )

        outcomes = sorted(
            (w.to_outcome() for w in working.values()),
            key=lambda o: o.file_path,
        )
        result.stats = RunStats.from_outcomes(
            outcomes, total_files=len(files), step_names=[s.name for s in steps]
        )
        result.outcomes = [
            o for o in outcomes if o.error is not None or o.modified or o.rule_errors
        ]
        return result

    def _index(
        self, collection: CollectionResult, project_root: Path
    ) -> dict[Path, frozenset[str]]:
        """Index a collection by file; degraded collections index nothing."""
        if collection.degraded:
            logger.warning(
                "Diagnostic collection degraded (%s); diagnostic-scoped rules will be skipped",
                collection.status,
            )
            return {}
        return index_by_file(collection.diagnostics, project_root)

    def _run_step(
        self,
        step: FixStep,
        files: list[Path],
        working: dict[Path, _WorkingFile],
        codes_index: dict[Path, frozenset[str]] | None,
        config: RunConfig,
        cancel_event: threading.Event,
    ) -> int:
        """Apply one step to every file and merge the results.

        Returns:
            Number of files handled before cancellation (len(files) if none).
        """
        tasks: list[tuple[Path, _WorkingFile | None, frozenset[str] | None]] = []
        skipped = 0
        for path in files:
            current = working.get(path)
            if current is not None and current.error is not None:
                skipped += 1
                continue

            codes = None if codes_index is None else codes_index.get(path, frozenset())
            if step.requires_diagnostics and (codes is None or codes.isdisjoint(step.diagnostic_codes)):
                skipped += 1
                continue

            tasks.append((path, current, codes))

        if config.jobs > 1 and len(tasks) > 1:
            results = self._run_parallel(step, tasks, config.jobs, cancel_event)
        else:
            results = self._run_sequential(step, tasks, cancel_event)

        processed = skipped
        for file_result in results:
            if file_result.cancelled:
                continue
            processed += 1
            self._merge(step, file_result, working)

        return processed

    def _process_file(
        self,
        step: FixStep,
        path: Path,
        current: _WorkingFile | None,
        codes: frozenset[str] | None,
        cancel_event: threading.Event,
    ) -> _FileStepResult:
        """Transform one file for one step. Runs on a worker thread."""
        if cancel_event.is_set():
            return _FileStepResult(path=path, cancelled=True)

        loaded = None
        if current is None:
            try:
                loaded = current = _load_file(path)
            except (OSError, UnicodeDecodeError) as e:
                message = f"Cannot read {path}: {e}"
                logger.error(message)
                return _FileStepResult(path=path, error=message)

        transform = self.transformer.apply(step, current.text, path, codes)
        return _FileStepResult(path=path, loaded=loaded, transform=transform)

    def _run_sequential(
        self,
        step: FixStep,
        tasks: list[tuple[Path, _WorkingFile | None, frozenset[str] | None]],
        cancel_event: threading.Event,
    ) -> list[_FileStepResult]:
        """Process files one after another."""
        results: list[_FileStepResult] = []
        for path, current, codes in tasks:
            if cancel_event.is_set():
                break
            results.append(self._process_file(step, path, current, codes, cancel_event))
        return results

    def _run_parallel(
        self,
        step: FixStep,
        tasks: list[tuple[Path, _WorkingFile | None, frozenset[str] | None]],
        jobs: int,
        cancel_event: threading.Event,
    ) -> list[_FileStepResult]:
        """Process files on a ThreadPoolExecutor."""
        results: list[_FileStepResult] = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=jobs) as executor:
            future_to_path: dict[concurrent.futures.Future[_FileStepResult], Path] = {}
            for path, current, codes in tasks:
                future = executor.submit(
                    self._process_file, step, path, current, codes, cancel_event
                )
                future_to_path[future] = path

            for future in concurrent.futures.as_completed(future_to_path):
                path = future_to_path[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    message = f"Failed to process {path}: {e!s}"
                    logger.error(message)
                    results.append(_FileStepResult(path=path, error=message))

        return results

    def _merge(
        self,
        step: FixStep,
        file_result: _FileStepResult,
        working: dict[Path, _WorkingFile],
    ) -> None:
        """Fold one worker result into the run state. Calling thread only."""
        path = file_result.path
        if file_result.loaded is not None:
            working[path] = file_result.loaded

        if file_result.error is not None:
            current = working.get(path)
            if current is None:
                working[path] = _WorkingFile(
                    path=path,
                    original_bytes=b"",
                    original_text="",
                    text="",
                    written_text="",
                    error=file_result.error,
                )
            else:
                current.error = file_result.error
            return

        current = working[path]
        transform = file_result.transform
        if transform is None:
            return

        current.rule_errors.extend(transform.rule_errors)
        if transform.text == current.text:
            return

        current.text = transform.text
        step_total = 0
        for name, count in transform.fix_counts.items():
            if count:
                current.fix_counts[name] = current.fix_counts.get(name, 0) + count
                step_total += count
        current.step_counts[step.name] = current.step_counts.get(step.name, 0) + step_total

    def _flush(
        self,
        working: dict[Path, _WorkingFile],
        config: RunConfig,
        timestamp: str,
    ) -> None:
        """Write every pending change, backing up original bytes first."""
        for path in sorted(working):
            current = working[path]
            if current.error is not None or current.text == current.written_text:
                continue

            if current.backup is None:
                try:
                    current.backup = create_backup(
                        path, current.original_bytes, config.backup_suffix, timestamp
                    )
                    logger.debug("Backed up %s to %s", path, current.backup.backup_path)
                except OSError as e:
                    current.error = f"Cannot back up {path}; left unchanged: {e}"
                    logger.error(current.error)
                    continue

            try:
                path.write_bytes(current.text.encode("utf-8"))
            except OSError as e:
                current.error = f"Cannot write {path}: {e}"
                logger.error(current.error)
                continue

            current.written_text = current.text
            logger.info("Modified %s", path)

    def _check_idempotence(
        self,
        steps: list[FixStep],
        files: Iterable[_WorkingFile],
        codes_index: dict[Path, frozenset[str]] | None,
    ) -> dict[str, int]:
        """Re-apply the steps to final texts and count rules that still fire."""
        offenders: dict[str, int] = {}
        for current in files:
            if current.error is not None or current.text == current.original_text:
                continue
            codes = None if codes_index is None else codes_index.get(current.path, frozenset())
            text = current.text
            for step in steps:
                transform = self.transformer.apply(step, text, current.path, codes)
                for name, count in transform.fix_counts.items():
                    if count:
                        offenders[name] = offenders.get(name, 0) + count
                text = transform.text
        if offenders:
            logger.warning(
                "Rules not idempotent on their own output: %s", ", ".join(sorted(offenders))
            )
        return offenders
