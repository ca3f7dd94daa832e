"""Coverage report adapters and the coverage index builder."""

from .cobertura import load_cobertura, parse_cobertura
from .index import CoverageIndexBuilder, normalise_path
from .lcov import load_lcov, parse_lcov
from .loader import CoverageLoader

__all__ = [
    "CoverageIndexBuilder",
    "CoverageLoader",
    "load_cobertura",
    "load_lcov",
    "normalise_path",
    "parse_cobertura",
    "parse_lcov",
]
