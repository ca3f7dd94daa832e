"""LCOV tracefile adapter."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import CoverageReportError
from ..models import CoverageFragment
from .paths import resolve_report_path

FORMAT_NAME = "lcov"


def load_lcov(
    path: Path, *, root: Optional[Path] = None, base: Optional[Path] = None
) -> List[CoverageFragment]:
    """Parse an LCOV tracefile from disk into coverage fragments."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CoverageReportError(f"Failed to read LCOV report {path}: {exc}") from exc
    return parse_lcov(text, root=root, base=base)


def parse_lcov(
    text: str, *, root: Optional[Path] = None, base: Optional[Path] = None
) -> List[CoverageFragment]:
    fragments: List[CoverageFragment] = []
    current: Optional[str] = None
    lines: List[Tuple[int, int]] = []

    def flush() -> None:
        if current is not None:
            fragments.append(
                CoverageFragment(
                    file=resolve_report_path(current, (), root, base), lines=tuple(lines)
                )
            )

    for raw in text.splitlines():
        record = raw.strip()
        if record.startswith("SF:"):
            flush()
            current = record[3:]
            lines = []
        elif record.startswith("DA:") and current is not None:
            parts = record[3:].split(",")
            if len(parts) < 2:
                continue
            lines.append((_parse_int(parts[0]), _parse_int(parts[1])))
        elif record == "end_of_record" and current is not None:
            flush()
            current = None
            lines = []

    flush()
    return fragments


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


__all__ = ["FORMAT_NAME", "load_lcov", "parse_lcov"]
