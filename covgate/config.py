"""Configuration loading for covgate (.covgate.yml, environment, CLI overrides)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import ConfigError, InvalidThreshold

CONFIG_FILENAME = ".covgate.yml"
DEFAULT_THRESHOLD = 80
DEFAULT_COVERAGE_FILES: Tuple[str, ...] = ("coverage.xml",)
DEFAULT_WORKERS = 4
REPORT_FORMATS: Tuple[str, ...] = ("text", "markdown", "json")
BLAME_SOURCES: Tuple[str, ...] = ("git", "github")
_PULL_REQUEST_EVENTS = {"pull_request", "pull_request_target"}


@dataclass(frozen=True)
class GatingConfig:
    """Inputs of a single gating decision, validated once on construction."""

    min_threshold: int = DEFAULT_THRESHOLD
    base_branch: Optional[str] = None
    from_timestamp: Optional[datetime] = None
    to_timestamp: Optional[datetime] = None
    enforce_per_committer: bool = False

    def __post_init__(self) -> None:
        validate_threshold(self.min_threshold)
        if self.base_branch is not None and not self.base_branch.strip():
            raise ConfigError("base_branch must not be blank")
        for name in ("from_timestamp", "to_timestamp"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                object.__setattr__(self, name, value.replace(tzinfo=timezone.utc))
        if (
            self.from_timestamp is not None
            and self.to_timestamp is not None
            and self.from_timestamp > self.to_timestamp
        ):
            raise ConfigError(
                f"from_timestamp {self.from_timestamp.isoformat()} is after "
                f"to_timestamp {self.to_timestamp.isoformat()}"
            )


@dataclass(frozen=True)
class CoverageConfig:
    """Coverage report locations and format."""

    files: Tuple[str, ...] = DEFAULT_COVERAGE_FILES
    format: Optional[str] = None


@dataclass(frozen=True)
class BlameConfig:
    """Where blame comes from and how its worker pool runs.

    ``source`` is ``git`` for the local clone or ``github`` for the GitHub
    GraphQL API.
    """

    workers: int = DEFAULT_WORKERS
    timeout: Optional[float] = None
    source: str = "git"


@dataclass(frozen=True)
class ReportConfig:
    """Output rendering and delivery."""

    format: str = "text"
    comment_on_pr: bool = False
    link_users: bool = True


@dataclass(frozen=True)
class GitHubContext:
    """GitHub Actions environment relevant to reporting."""

    repository: Optional[str] = None
    ref: Optional[str] = None
    ref_name: Optional[str] = None
    event_name: Optional[str] = None
    base_ref: Optional[str] = None
    api_url: Optional[str] = None
    token: Optional[str] = None

    @property
    def is_pull_request(self) -> bool:
        return self.event_name in _PULL_REQUEST_EVENTS

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "GitHubContext":
        return cls(
            repository=_env(env, "GITHUB_REPOSITORY"),
            ref=_env(env, "GITHUB_REF"),
            ref_name=_env(env, "GITHUB_REF_NAME"),
            event_name=_env(env, "GITHUB_EVENT_NAME"),
            base_ref=_env(env, "GITHUB_BASE_REF"),
            api_url=_env(env, "GITHUB_API_URL"),
            token=_env(env, "GITHUB_TOKEN") or _env(env, "INPUT_GITHUB_TOKEN"),
        )


@dataclass(frozen=True)
class CovGateConfig:
    """Represents the resolved settings for one covgate run."""

    root: Path
    gating: GatingConfig = field(default_factory=GatingConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    blame: BlameConfig = field(default_factory=BlameConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    github: GitHubContext = field(default_factory=GitHubContext)

    def coverage_paths(self) -> List[Path]:
        """Return coverage report paths resolved against the repository root."""
        paths: List[Path] = []
        for entry in self.coverage.files:
            path = Path(entry).expanduser()
            paths.append(path if path.is_absolute() else self.root / path)
        return paths

    def with_overrides(
        self,
        *,
        min_threshold: Optional[int] = None,
        base_branch: Optional[str] = None,
        from_timestamp: Any = None,
        to_timestamp: Any = None,
        enforce_per_committer: Optional[bool] = None,
        coverage_files: Optional[Sequence[str]] = None,
        coverage_format: Optional[str] = None,
        workers: Optional[int] = None,
        timeout: Optional[float] = None,
        blame_source: Optional[str] = None,
        report_format: Optional[str] = None,
        comment_on_pr: Optional[bool] = None,
        link_users: Optional[bool] = None,
    ) -> "CovGateConfig":
        """Return a copy with explicitly provided values replacing loaded ones."""
        gating_changes: Dict[str, Any] = {}
        if min_threshold is not None:
            gating_changes["min_threshold"] = min_threshold
        if base_branch is not None:
            gating_changes["base_branch"] = base_branch
        if from_timestamp is not None:
            gating_changes["from_timestamp"] = parse_timestamp(from_timestamp, "from_timestamp")
        if to_timestamp is not None:
            gating_changes["to_timestamp"] = parse_timestamp(
                to_timestamp, "to_timestamp", end_of_day=True
            )
        if enforce_per_committer is not None:
            gating_changes["enforce_per_committer"] = enforce_per_committer

        coverage = self.coverage
        if coverage_files:
            coverage = replace(coverage, files=tuple(coverage_files))
        if coverage_format is not None:
            coverage = replace(coverage, format=coverage_format)

        blame = self.blame
        if workers is not None:
            blame = replace(blame, workers=workers)
        if timeout is not None:
            blame = replace(blame, timeout=timeout)
        if blame_source is not None:
            blame = replace(blame, source=_as_blame_source(blame_source))

        report = self.report
        if report_format is not None:
            report = replace(report, format=_as_report_format(report_format))
        if comment_on_pr is not None:
            report = replace(report, comment_on_pr=comment_on_pr)
        if link_users is not None:
            report = replace(report, link_users=link_users)

        return replace(
            self,
            gating=replace(self.gating, **gating_changes) if gating_changes else self.gating,
            coverage=coverage,
            blame=blame,
            report=report,
        )


def validate_threshold(value: Any) -> int:
    """Return ``value`` when it is an integer within ``[0, 100]``."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise InvalidThreshold(value)
    return value


def load_config(config_path: Path, env: Mapping[str, str] | None = None) -> CovGateConfig:
    """Load configuration from ``.covgate.yml`` and the environment."""
    env = os.environ if env is None else env
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    window = _as_dict(data.get("window"), "window")
    coverage_data = _as_dict(data.get("coverage"), "coverage")
    blame_data = _as_dict(data.get("blame"), "blame")
    report_data = _as_dict(data.get("report"), "report")

    threshold = _as_threshold(_pick(env, "INPUT_MIN_THRESHOLD", data.get("min_threshold")))
    base_branch = _as_str(_pick(env, "INPUT_BASE_BRANCH", data.get("base_branch")))
    from_raw = _pick(env, "INPUT_FROM_TIMESTAMP", window.get("from"))
    to_raw = _pick(env, "INPUT_TO_TIMESTAMP", window.get("to"))
    enforce = _as_bool(
        _pick(env, "INPUT_ENFORCE_PER_COMMITTER", data.get("enforce_per_committer")),
        "enforce_per_committer",
    )

    github = GitHubContext.from_env(env)
    if base_branch is None and github.is_pull_request and github.base_ref:
        base_branch = github.base_ref

    gating = GatingConfig(
        min_threshold=DEFAULT_THRESHOLD if threshold is None else threshold,
        base_branch=base_branch,
        from_timestamp=parse_timestamp(from_raw, "from_timestamp") if from_raw is not None else None,
        to_timestamp=(
            parse_timestamp(to_raw, "to_timestamp", end_of_day=True)
            if to_raw is not None
            else None
        ),
        enforce_per_committer=bool(enforce),
    )

    files_env = _env(env, "INPUT_FILES")
    files = (
        _split_files(files_env)
        if files_env
        else _as_str_list(coverage_data.get("files"), "coverage.files")
    )
    coverage_format = _as_str(coverage_data.get("format"))
    if coverage_format is not None:
        coverage_format = coverage_format.lower()
    coverage = CoverageConfig(
        files=tuple(files) if files else DEFAULT_COVERAGE_FILES,
        format=coverage_format,
    )

    workers = _as_int(blame_data.get("workers"), "blame.workers")
    if workers is not None and workers < 1:
        raise ConfigError("blame.workers must be at least 1")
    timeout = _as_float(blame_data.get("timeout"), "blame.timeout")
    source = _as_str(blame_data.get("source")) or "git"
    if _as_bool(_env(env, "INPUT_USE_GITHUB_API_FOR_BLAME"), "INPUT_USE_GITHUB_API_FOR_BLAME"):
        source = "github"
    blame = BlameConfig(
        workers=DEFAULT_WORKERS if workers is None else workers,
        timeout=timeout,
        source=_as_blame_source(source),
    )

    report_format = _as_str(report_data.get("format"))
    report = ReportConfig(
        format=_as_report_format(report_format) if report_format else "text",
        comment_on_pr=bool(_as_bool(report_data.get("comment_on_pr"), "report.comment_on_pr")),
        link_users=_as_bool(report_data.get("link_users"), "report.link_users") is not False,
    )

    return CovGateConfig(
        root=root,
        gating=gating,
        coverage=coverage,
        blame=blame,
        report=report,
        github=github,
    )


def parse_timestamp(value: Any, name: str = "timestamp", *, end_of_day: bool = False) -> datetime:
    """Parse ISO-8601 strings, dates, datetimes or epoch seconds into UTC-aware datetimes.

    A bare date means the start of that day, or its last instant when
    ``end_of_day`` is set (used for the upper bound of a window).
    """
    if isinstance(value, str) and value.strip():
        value = _as_date(value.strip()) or value
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            if text.lstrip("-").isdigit():
                parsed = datetime.fromtimestamp(int(text), tz=timezone.utc)
            else:
                parsed = datetime.fromisoformat(text)
        except (ValueError, OverflowError, OSError) as exc:
            raise ConfigError(f"Invalid {name} {value!r}: {exc}") from exc
    else:
        raise ConfigError(f"Invalid {name} {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_date(text: str) -> Optional[date]:
    if len(text) != 10:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _env(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def _pick(env: Mapping[str, str], key: str, fallback: Any) -> Any:
    value = _env(env, key)
    return value if value is not None else fallback


def _split_files(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _as_dict(value: Any, name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    return None


def _as_threshold(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise InvalidThreshold(value) from exc
    return validate_threshold(value)


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    raise ConfigError(f"{name} must be an integer, got {value!r}")


def _as_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    raise ConfigError(f"{name} must be a number, got {value!r}")


def _as_bool(value: Any, name: str) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _as_str_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return _split_files(value)
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    raise ConfigError(f"{name} must be a list of strings")


def _as_blame_source(value: str) -> str:
    lowered = value.lower()
    if lowered not in BLAME_SOURCES:
        raise ConfigError(
            f"Unknown blame source {value!r}; expected one of {', '.join(BLAME_SOURCES)}"
        )
    return lowered


def _as_report_format(value: str) -> str:
    lowered = value.lower()
    if lowered not in REPORT_FORMATS:
        raise ConfigError(
            f"Unknown report format {value!r}; expected one of {', '.join(REPORT_FORMATS)}"
        )
    return lowered


__all__ = [
    "BLAME_SOURCES",
    "BlameConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "CovGateConfig",
    "CoverageConfig",
    "GatingConfig",
    "GitHubContext",
    "InvalidThreshold",
    "ReportConfig",
    "load_config",
    "parse_timestamp",
    "validate_threshold",
]
