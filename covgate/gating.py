"""Threshold-based pass/fail decision over aggregated attribution."""

from __future__ import annotations

from typing import Sequence

from .analysis import percentage
from .config import validate_threshold
from .logging import get_logger
from .models import Attribution, GateResult

VACUOUS_PERCENTAGE = 100.0


class GateEngine:
    """Evaluates an attribution against a minimum threshold.

    The threshold is inclusive: a committer exactly at the threshold passes.
    With no attributed lines at all, the run passes vacuously and reports
    :data:`VACUOUS_PERCENTAGE`.
    """

    def __init__(self, threshold: int, *, enforce_per_committer: bool = False) -> None:
        self.threshold = validate_threshold(threshold)
        self.enforce_per_committer = enforce_per_committer
        self.logger = get_logger("gating")

    def evaluate(
        self,
        attribution: Attribution,
        *,
        rejected_fragments: Sequence[str] = (),
        degraded_files: Sequence[str] = (),
    ) -> GateResult:
        total = attribution.total_lines
        covered = attribution.covered_lines
        overall = percentage(covered, total) if total else VACUOUS_PERCENTAGE

        violating = frozenset(
            stats.identity
            for stats in attribution.committers
            if stats.percentage < self.threshold
        )
        passed = overall >= self.threshold
        if self.enforce_per_committer and violating:
            passed = False

        result = GateResult(
            overall_percentage=overall,
            per_committer=attribution.committers,
            passed=passed,
            threshold=self.threshold,
            violating_committers=violating,
            enforce_per_committer=self.enforce_per_committer,
            total_lines=total,
            covered_lines=covered,
            unattributed=attribution.unattributed,
            rejected_fragments=tuple(rejected_fragments),
            degraded_files=tuple(degraded_files),
        )
        self.logger.info(
            "Gate %s: %.2f%% overall against %d%% (%d violating committers)",
            result.status,
            overall,
            self.threshold,
            len(violating),
        )
        return result


__all__ = ["GateEngine", "VACUOUS_PERCENTAGE"]
