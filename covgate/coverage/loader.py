"""Locates coverage reports on disk and dispatches them to format adapters."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import CoverageReportError
from ..logging import get_logger
from ..models import CoverageFragment
from .cobertura import load_cobertura
from .lcov import load_lcov

Adapter = Callable[..., List[CoverageFragment]]


class CoverageLoader:
    """Reads one or more coverage reports into a flat fragment list."""

    _ADAPTERS: Dict[str, Adapter] = {
        "cobertura": load_cobertura,
        "lcov": load_lcov,
    }

    _SUFFIX_FORMATS: Dict[str, str] = {
        ".xml": "cobertura",
        ".info": "lcov",
        ".lcov": "lcov",
    }

    def __init__(self) -> None:
        self.logger = get_logger("coverage")

    @classmethod
    def formats(cls) -> Sequence[str]:
        return tuple(cls._ADAPTERS)

    def load(
        self,
        paths: Sequence[Path],
        *,
        root: Optional[Path] = None,
        base: Optional[Path] = None,
        fmt: Optional[str] = None,
    ) -> List[CoverageFragment]:
        """Load every report; names are made relative to ``root`` from ``base``."""
        if not paths:
            raise CoverageReportError("No coverage files specified")
        if fmt is not None and fmt not in self._ADAPTERS:
            raise CoverageReportError(
                f"Unknown coverage format {fmt!r}; expected one of {', '.join(self._ADAPTERS)}"
            )

        fragments: List[CoverageFragment] = []
        for path in paths:
            if not path.is_file():
                raise FileNotFoundError(f"Coverage file not found: {path}")
            report_format = fmt or self.detect_format(path)
            loaded = self._ADAPTERS[report_format](path, root=root, base=base)
            self.logger.info(
                "Loaded %d file entries from %s (%s)", len(loaded), path, report_format
            )
            fragments.extend(loaded)
        return fragments

    def detect_format(self, path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix in self._SUFFIX_FORMATS:
            return self._SUFFIX_FORMATS[suffix]

        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                head = handle.read(4096)
        except OSError as exc:
            raise CoverageReportError(f"Failed to read coverage report {path}: {exc}") from exc
        stripped = head.lstrip()
        if stripped.startswith("<"):
            return "cobertura"
        if any(line.startswith(("SF:", "TN:")) for line in stripped.splitlines()):
            return "lcov"
        raise CoverageReportError(f"Cannot determine the coverage format of {path}")


__all__ = ["CoverageLoader"]
