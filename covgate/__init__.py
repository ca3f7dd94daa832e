"""Per-committer coverage attribution and gating for CI pipelines."""

from .analysis import AttributionAggregator
from .config import CovGateConfig, GatingConfig, load_config
from .coverage import CoverageIndexBuilder, CoverageLoader
from .errors import (
    ConfigError,
    CovGateError,
    CoverageReportError,
    FileHistoryError,
    HistoryUnavailable,
    InvalidThreshold,
    MalformedCoverageData,
)
from .gating import GateEngine
from .git import BlameResolver, GitHistoryProvider, HistoryProvider
from .models import (
    UNATTRIBUTED,
    Attribution,
    BlameEntry,
    BlameIndex,
    BlameScope,
    CommitterStats,
    CoverageFragment,
    CoverageIndex,
    GateResult,
    LineRecord,
)
from .orchestrator import CheckOutcome, Orchestrator

__version__ = "0.1.0"

__all__ = [
    "Attribution",
    "AttributionAggregator",
    "BlameEntry",
    "BlameIndex",
    "BlameResolver",
    "BlameScope",
    "CheckOutcome",
    "CommitterStats",
    "ConfigError",
    "CovGateConfig",
    "CovGateError",
    "CoverageFragment",
    "CoverageIndex",
    "CoverageIndexBuilder",
    "CoverageLoader",
    "CoverageReportError",
    "FileHistoryError",
    "GateEngine",
    "GateResult",
    "GatingConfig",
    "GitHistoryProvider",
    "HistoryProvider",
    "HistoryUnavailable",
    "InvalidThreshold",
    "LineRecord",
    "MalformedCoverageData",
    "Orchestrator",
    "UNATTRIBUTED",
    "load_config",
]
