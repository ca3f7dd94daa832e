"""Error hierarchy shared by the covgate pipeline."""

from __future__ import annotations

from typing import Any


class CovGateError(RuntimeError):
    """Base class for every failure raised by covgate."""


class ConfigError(CovGateError):
    """Raised when configuration cannot be loaded or is inconsistent."""


class InvalidThreshold(ConfigError):
    """Raised when the minimum threshold falls outside ``[0, 100]``."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid threshold {value!r}: expected an integer between 0 and 100")
        self.value = value


class MalformedCoverageData(CovGateError):
    """A coverage fragment was rejected during index construction."""

    def __init__(self, file: str, reason: str) -> None:
        label = file if file else "<empty file name>"
        super().__init__(f"Malformed coverage data for {label}: {reason}")
        self.file = file
        self.reason = reason


class CoverageReportError(CovGateError):
    """Raised when a coverage report cannot be read or its format is unknown."""


class HistoryUnavailable(CovGateError):
    """Version-control history cannot be read; attribution is impossible."""


class FileHistoryError(CovGateError):
    """History for a single file cannot be resolved."""

    def __init__(self, file: str, reason: str) -> None:
        super().__init__(f"History unavailable for {file}: {reason}")
        self.file = file
        self.reason = reason


__all__ = [
    "ConfigError",
    "CovGateError",
    "CoverageReportError",
    "FileHistoryError",
    "HistoryUnavailable",
    "InvalidThreshold",
    "MalformedCoverageData",
]
