"""Post-run verification against the type-checker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from dxfix.diagnostics import CheckerNotFoundError, DiagnosticSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of re-checking a project after a run.

    Attributes:
        new_count: Diagnostics reported after the run.
        resolved_count: Diagnostics that went away (never negative).
        success: True iff new_count <= previous_count. Partial progress counts
            as success; regressions do not.
        previous_count: Baseline the run started from.
        skipped: Whether verification could not be performed.
        reason: Why verification was skipped.
    """

    new_count: int
    resolved_count: int
    success: bool
    previous_count: int
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def skip(cls, previous_count: int, reason: str) -> VerificationResult:
        """Build a skipped result."""
        return cls(
            new_count=0,
            resolved_count=0,
            success=False,
            previous_count=previous_count,
            skipped=True,
            reason=reason,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "new_count": self.new_count,
            "resolved_count": self.resolved_count,
            "success": self.success,
            "previous_count": self.previous_count,
            "skipped": self.skipped,
            "reason": self.reason,
        }


class Verifier:
    """Re-runs the checker after a run and compares diagnostic counts."""

    def __init__(self, source: DiagnosticSource) -> None:
        self.source = source

    def verify(self, project_root: Path, previous_count: int) -> VerificationResult:
        """Re-collect diagnostics and compare against the baseline.

        A checker that is missing, times out, or produces unparseable output
        yields a skipped result instead of an error.

        Args:
            project_root: Directory the checker runs in.
            previous_count: Diagnostic count before the run.

        Returns:
            VerificationResult.
        """
        try:
            collection = self.source.run(project_root)
        except CheckerNotFoundError as e:
            logger.warning("Verification skipped: %s", e)
            return VerificationResult.skip(previous_count, str(e))

        if collection.degraded:
            reason = f"diagnostic collection {collection.status}"
            logger.warning("Verification skipped: %s", reason)
            return VerificationResult.skip(previous_count, reason)

        new_count = collection.count
        result = VerificationResult(
            new_count=new_count,
            resolved_count=max(previous_count - new_count, 0),
            success=new_count <= previous_count,
            previous_count=previous_count,
        )
        logger.info(
            "Verification: %d -> %d diagnostic(s)", previous_count, new_count
        )
        return result
