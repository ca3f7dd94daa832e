"""Core data models shared across covgate components."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import MalformedCoverageData

UNATTRIBUTED = "unattributed"
"""Sentinel identity for lines that cannot be credited to a committer."""

LineKey = Tuple[str, int]


@dataclass(frozen=True)
class CoverageFragment:
    """Per-file coverage as produced by a report-format adapter.

    ``lines`` holds ``(line_number, covered)`` pairs where ``covered`` is either
    a boolean flag or a hit count.
    """

    file: str
    lines: Sequence[Tuple[int, Union[bool, int]]]


@dataclass(frozen=True)
class LineRecord:
    """Authoritative coverage state of a single source line."""

    file: str
    line: int
    covered: bool


class CoverageIndex(Mapping):
    """Immutable ``(file, line) -> LineRecord`` mapping built once per run."""

    def __init__(
        self,
        records: Mapping[LineKey, LineRecord],
        rejected: Sequence[MalformedCoverageData] = (),
    ) -> None:
        self._records = MappingProxyType(dict(records))
        self.rejected: Tuple[MalformedCoverageData, ...] = tuple(rejected)
        by_file: Dict[str, List[LineRecord]] = {}
        for record in self._records.values():
            by_file.setdefault(record.file, []).append(record)
        self._by_file = {
            path: tuple(sorted(items, key=lambda item: item.line))
            for path, items in by_file.items()
        }

    def __getitem__(self, key: LineKey) -> LineRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[LineKey]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def files(self) -> List[str]:
        """Return every file present in the index, sorted."""
        return sorted(self._by_file)

    def lines_for(self, file: str) -> Tuple[LineRecord, ...]:
        """Return the records of ``file`` ordered by line number."""
        return self._by_file.get(file, ())


@dataclass(frozen=True)
class BlameEntry:
    """Authorship of one line's current content.

    ``reason`` explains why an entry carries the ``unattributed`` identity
    (``inherited``, ``outside-window``, ``no-history``, ``uncommitted``).
    """

    file: str
    line: int
    identity: str
    timestamp: Optional[datetime] = None
    revision: Optional[str] = None
    name: Optional[str] = None
    reason: Optional[str] = None

    @property
    def attributed(self) -> bool:
        return self.identity != UNATTRIBUTED


class BlameIndex(Mapping):
    """Immutable ``(file, line) -> BlameEntry`` mapping scoped to one run."""

    def __init__(
        self,
        entries: Mapping[LineKey, BlameEntry],
        degraded_files: Sequence[str] = (),
    ) -> None:
        self._entries = MappingProxyType(dict(entries))
        self.degraded_files: Tuple[str, ...] = tuple(sorted(degraded_files))

    def __getitem__(self, key: LineKey) -> BlameEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[LineKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def identities(self) -> FrozenSet[str]:
        """Return every real committer identity present in the index."""
        return frozenset(entry.identity for entry in self._entries.values() if entry.attributed)


@dataclass(frozen=True)
class BlameScope:
    """Revision window a history lookup is restricted to."""

    base_revision: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    def within_window(self, timestamp: Optional[datetime]) -> bool:
        if self.since is None and self.until is None:
            return True
        if timestamp is None:
            return False
        if self.since is not None and timestamp < self.since:
            return False
        if self.until is not None and timestamp > self.until:
            return False
        return True


@dataclass(frozen=True)
class CommitterStats:
    """Coverage totals for a single committer identity."""

    identity: str
    total_lines: int
    covered_lines: int
    percentage: float
    name: Optional[str] = None


@dataclass(frozen=True)
class Attribution:
    """Joined coverage/blame totals produced by the aggregator."""

    committers: Tuple[CommitterStats, ...]
    unattributed: Optional[CommitterStats] = None

    @property
    def total_lines(self) -> int:
        return sum(stats.total_lines for stats in self.committers)

    @property
    def covered_lines(self) -> int:
        return sum(stats.covered_lines for stats in self.committers)


@dataclass(frozen=True)
class GateResult:
    """Terminal pass/fail verdict for one gating run."""

    overall_percentage: float
    per_committer: Tuple[CommitterStats, ...]
    passed: bool
    threshold: int
    violating_committers: FrozenSet[str]
    enforce_per_committer: bool = False
    total_lines: int = 0
    covered_lines: int = 0
    unattributed: Optional[CommitterStats] = None
    rejected_fragments: Tuple[str, ...] = ()
    degraded_files: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        return "PASSED" if self.passed else "FAILED"
