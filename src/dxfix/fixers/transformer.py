"""Applies one fix step to one file's text."""

from __future__ import annotations

import logging
from pathlib import Path

from dxfix.fixers.base import FixStep, TransformResult

logger = logging.getLogger(__name__)


class FileTransformer:
    """Runs a step's rules, in order, over in-memory text.

    Each rule sees the output of the previous rule, so rules can be chained
    (e.g. normalize quotes, then fix delimiters). The transformer never
    touches the filesystem.
    """

    def apply(
        self,
        step: FixStep,
        file_text: str,
        file_path: Path,
        diagnostic_codes: frozenset[str] | None = None,
    ) -> TransformResult:
        """Apply every applicable rule of a step.

        Args:
            step: The step whose rules to apply.
            file_text: Current text of the file.
            file_path: Path of the file, for file filters and logging.
            diagnostic_codes: Codes outstanding in this file. None means
                diagnostics are unavailable, so scoped rules are skipped.

        Returns:
            TransformResult with the new text and per-rule fix counts.
        """
        result = TransformResult(text=file_text)

        for rule in step.rules:
            result.fix_counts.setdefault(rule.name, 0)

            try:
                if not rule.accepts_file(file_path):
                    continue
                if not rule.accepts_codes(diagnostic_codes):
                    continue
                new_text, count = rule.apply(result.text)
            except Exception as e:
                message = f"Rule '{rule.name}' failed on {file_path}: {e!s}"
                logger.error(message)
                result.rule_errors.append(message)
                continue

            if count:
                logger.debug("  %s: %s (%d fix(es))", file_path, rule.name, count)
            result.text = new_text
            result.fix_counts[rule.name] += count

        return result
