"""Cobertura XML report adapter."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import CoverageReportError
from ..models import CoverageFragment
from .paths import resolve_report_path

FORMAT_NAME = "cobertura"


def load_cobertura(
    path: Path, *, root: Optional[Path] = None, base: Optional[Path] = None
) -> List[CoverageFragment]:
    """Parse a Cobertura report from disk into coverage fragments."""
    try:
        document = ET.parse(str(path)).getroot()
    except ET.ParseError as exc:
        raise CoverageReportError(f"Failed to parse Cobertura report {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CoverageReportError(f"Failed to read Cobertura report {path}: {exc}") from exc
    return parse_cobertura(document, root=root, base=base, label=str(path))


def parse_cobertura(
    document: ET.Element,
    *,
    root: Optional[Path] = None,
    base: Optional[Path] = None,
    label: str = "<report>",
) -> List[CoverageFragment]:
    if document.tag != "coverage":
        raise CoverageReportError(f"{label} is not a Cobertura report (root <{document.tag}>)")

    sources = [
        element.text.strip()
        for element in document.iter("source")
        if element.text and element.text.strip()
    ]

    fragments: List[CoverageFragment] = []
    for element in document.iter("class"):
        filename = element.get("filename", "")
        lines: List[Tuple[int, int]] = []
        # Lines appear under <class><lines> and again under <methods>; the
        # index builder merges duplicates.
        for line in element.iter("line"):
            number = line.get("number")
            hits = line.get("hits")
            if number is None or hits is None:
                continue
            lines.append((_parse_line_number(number), _parse_hits(hits)))
        fragments.append(
            CoverageFragment(
                file=resolve_report_path(filename, sources, root, base) if filename else "",
                lines=tuple(lines),
            )
        )
    return fragments


def _parse_line_number(value: str) -> int:
    # Unparseable numbers surface as 0 so the index builder rejects the fragment.
    try:
        return int(value)
    except ValueError:
        return 0


def _parse_hits(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


__all__ = ["FORMAT_NAME", "load_cobertura", "parse_cobertura"]
