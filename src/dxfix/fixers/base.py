"""Fix rule and fix step model.

A FixRule is a named, pure text transformation: a compiled pattern plus a
replacement template or function. A FixStep groups rules under a unique
priority; steps are the unit of sequencing.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

Transform = str | Callable[[re.Match[str]], str]
FileFilter = Callable[[Path], bool]


def path_matcher(regex: str) -> FileFilter:
    """Build a file filter from a regex searched against the POSIX path.

    Args:
        regex: Regular expression, e.g. r"\\.test\\.ts$".

    Returns:
        Predicate accepting paths whose POSIX form matches.

    Raises:
        re.error: If the regex does not compile.
    """
    compiled = re.compile(regex)

    def _matches(path: Path) -> bool:
        return compiled.search(path.as_posix()) is not None

    _matches.pattern = regex  # type: ignore[attr-defined]
    return _matches


@dataclass(frozen=True)
class FixRule:
    """A named pattern-and-replacement transformation.

    Attributes:
        name: Human-readable rule name, used as the statistics key.
        pattern: Compiled pattern matched against the current file text.
        transform: Replacement template (``re`` syntax, e.g. ``\\1``) or a
            function of the match returning the replacement text.
        file_filter: Optional predicate; the rule is skipped for paths it
            rejects.
        diagnostic_codes: Codes the rule is scoped to. Empty means the rule
            is unconditional.
    """

    name: str
    pattern: re.Pattern[str]
    transform: Transform
    file_filter: FileFilter | None = None
    diagnostic_codes: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("FixRule requires a name")
        if isinstance(self.pattern, str):
            object.__setattr__(self, "pattern", re.compile(self.pattern))
        if not isinstance(self.diagnostic_codes, frozenset):
            object.__setattr__(self, "diagnostic_codes", frozenset(self.diagnostic_codes))

    @property
    def is_diagnostic_scoped(self) -> bool:
        """Whether the rule only applies to files with matching diagnostics."""
        return bool(self.diagnostic_codes)

    def accepts_file(self, path: Path) -> bool:
        """Check the rule's file filter."""
        return self.file_filter is None or self.file_filter(path)

    def accepts_codes(self, codes: frozenset[str] | None) -> bool:
        """Check the rule's diagnostic scope against a file's outstanding codes.

        Args:
            codes: Codes outstanding in the file, or None when diagnostics
                are unavailable.

        Returns:
            True for unconditional rules; for scoped rules, True only if at
            least one code matches.
        """
        if not self.diagnostic_codes:
            return True
        if codes is None:
            return False
        return not self.diagnostic_codes.isdisjoint(codes)

    def replacement_for(self, match: re.Match[str]) -> str:
        """Compute the replacement text for one match."""
        if isinstance(self.transform, str):
            return match.expand(self.transform)
        return self.transform(match)

    def apply(self, text: str) -> tuple[str, int]:
        """Replace all non-overlapping matches in text.

        Only matches whose replacement differs from the matched span count
        as fixes, so re-applying an idempotent rule reports zero.

        Args:
            text: Text to transform.

        Returns:
            Tuple of (new_text, fix_count).
        """
        count = 0

        def _replace(match: re.Match[str]) -> str:
            nonlocal count
            replacement = self.replacement_for(match)
            if replacement != match.group(0):
                count += 1
            return replacement

        new_text = self.pattern.sub(_replace, text)
        return new_text, count


@dataclass(frozen=True)
class FixStep:
    """An ordered, named group of rules sharing a priority.

    Attributes:
        name: Human-readable step name, used as the statistics key.
        description: What the step fixes.
        priority: Unique ordering key; lower runs earlier.
        rules: Rules in application order.
    """

    name: str
    description: str
    priority: int
    rules: tuple[FixRule, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("FixStep requires a name")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValueError(f"FixStep '{self.name}' priority must be an integer")
        if not isinstance(self.rules, tuple):
            object.__setattr__(self, "rules", tuple(self.rules))

    @property
    def diagnostic_codes(self) -> frozenset[str]:
        """Union of the diagnostic codes referenced by the step's rules."""
        codes: set[str] = set()
        for rule in self.rules:
            codes.update(rule.diagnostic_codes)
        return frozenset(codes)

    @property
    def is_diagnostic_scoped(self) -> bool:
        """Whether any rule in the step is scoped to diagnostic codes."""
        return any(rule.is_diagnostic_scoped for rule in self.rules)

    @property
    def requires_diagnostics(self) -> bool:
        """Whether every rule is scoped, so files without matching codes can be skipped."""
        return bool(self.rules) and all(rule.is_diagnostic_scoped for rule in self.rules)

    def rule_names(self) -> list[str]:
        """Names of the step's rules in order."""
        return [rule.name for rule in self.rules]


@dataclass
class TransformResult:
    """Result of applying one step to one file's text.

    Attributes:
        text: Text after every applicable rule ran.
        fix_counts: Fixes per rule name (zero for rules that did not change anything).
        rule_errors: Messages for rules that raised and were skipped.
    """

    text: str
    fix_counts: dict[str, int] = field(default_factory=dict)
    rule_errors: list[str] = field(default_factory=list)

    @property
    def total_fixes(self) -> int:
        """Sum of all rule counts."""
        return sum(self.fix_counts.values())


def make_step(
    name: str,
    priority: int,
    rules: Iterable[FixRule],
    description: str = "",
) -> FixStep:
    """Convenience constructor for programmatic catalogs."""
    return FixStep(name=name, description=description, priority=priority, rules=tuple(rules))
