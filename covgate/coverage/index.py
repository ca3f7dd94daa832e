"""Normalisation of coverage fragments into a single line index."""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from ..errors import MalformedCoverageData
from ..logging import get_logger
from ..models import CoverageFragment, CoverageIndex, LineKey, LineRecord


class CoverageIndexBuilder:
    """Merges per-file fragments with union-covered semantics.

    A line is covered when any fragment marks it covered. Fragments with an
    empty file name or a non-positive line number are rejected as a whole and
    kept on :attr:`CoverageIndex.rejected`; the rest of the build continues.
    """

    def __init__(self) -> None:
        self.logger = get_logger("coverage")

    def build(self, fragments: Iterable[CoverageFragment]) -> CoverageIndex:
        covered: Dict[LineKey, bool] = {}
        rejected: List[MalformedCoverageData] = []
        accepted = 0

        for fragment in fragments:
            try:
                path, lines = self._validate(fragment)
            except MalformedCoverageData as exc:
                rejected.append(exc)
                continue
            accepted += 1
            for number, is_covered in lines:
                key = (path, number)
                covered[key] = covered.get(key, False) or is_covered

        self.logger.debug(
            "Indexed %d lines from %d fragments (%d rejected)",
            len(covered),
            accepted,
            len(rejected),
        )
        records = {
            key: LineRecord(file=key[0], line=key[1], covered=value)
            for key, value in covered.items()
        }
        return CoverageIndex(records, rejected=rejected)

    def _validate(self, fragment: CoverageFragment) -> Tuple[str, List[Tuple[int, bool]]]:
        path = normalise_path(fragment.file or "")
        if not path:
            raise MalformedCoverageData(fragment.file or "", "file name is empty")

        lines: List[Tuple[int, bool]] = []
        for number, value in fragment.lines:
            if isinstance(number, bool) or not isinstance(number, int):
                raise MalformedCoverageData(path, f"line number {number!r} is not an integer")
            if number <= 0:
                raise MalformedCoverageData(path, f"line number {number} is not positive")
            lines.append((number, _is_covered(value)))
        return path, lines


def normalise_path(path: str) -> str:
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _is_covered(value: bool | int) -> bool:
    if isinstance(value, bool):
        return value
    return value > 0


__all__ = ["CoverageIndexBuilder", "normalise_path"]
