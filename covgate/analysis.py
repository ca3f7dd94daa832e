"""Joins coverage and blame into per-committer statistics."""

from __future__ import annotations

from typing import Dict, List, Optional

from .logging import get_logger
from .models import UNATTRIBUTED, Attribution, BlameIndex, CommitterStats, CoverageIndex


class AttributionAggregator:
    """Outer-joins a coverage index with a blame index.

    Only lines the coverage report enumerates are counted: a blamed line
    without a coverage record is not coverable and is ignored. Coverage lines
    without a blame entry count toward ``unattributed``.
    """

    def __init__(self) -> None:
        self.logger = get_logger("analysis")

    def aggregate(self, coverage: CoverageIndex, blame: BlameIndex) -> Attribution:
        totals: Dict[str, List[int]] = {}
        names: Dict[str, str] = {}

        for key, record in coverage.items():
            entry = blame.get(key)
            identity = entry.identity if entry is not None else UNATTRIBUTED
            counts = totals.setdefault(identity, [0, 0])
            counts[0] += 1
            if record.covered:
                counts[1] += 1
            if entry is not None and entry.name and identity != UNATTRIBUTED:
                names.setdefault(identity, entry.name)

        unattributed: Optional[CommitterStats] = None
        committers: List[CommitterStats] = []
        for identity, (total, covered) in totals.items():
            if total == 0:
                continue
            stats = build_stats(identity, total, covered, name=names.get(identity))
            if identity == UNATTRIBUTED:
                unattributed = stats
            else:
                committers.append(stats)

        committers.sort(key=lambda stats: (stats.percentage, stats.identity))
        self.logger.debug(
            "Aggregated %d committers (%d unattributed lines)",
            len(committers),
            unattributed.total_lines if unattributed else 0,
        )
        return Attribution(committers=tuple(committers), unattributed=unattributed)


def build_stats(
    identity: str, total_lines: int, covered_lines: int, *, name: Optional[str] = None
) -> CommitterStats:
    return CommitterStats(
        identity=identity,
        total_lines=total_lines,
        covered_lines=covered_lines,
        percentage=percentage(covered_lines, total_lines),
        name=name,
    )


def percentage(covered: int, total: int) -> float:
    """Return ``covered / total * 100``; exact whenever the ratio is a whole percent."""
    if total == 0:
        return 0.0
    return covered * 100 / total


__all__ = ["AttributionAggregator", "build_stats", "percentage"]
