"""Tests for covgate.config."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from pathlib import Path

import pytest

from covgate.config import (
    CovGateConfig,
    GatingConfig,
    load_config,
    parse_timestamp,
)
from covgate.errors import ConfigError, InvalidThreshold


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, env={})

    assert isinstance(config, CovGateConfig)
    assert config.root == tmp_path.resolve()
    assert config.gating == GatingConfig()
    assert config.gating.min_threshold == 80
    assert config.coverage.files == ("coverage.xml",)
    assert config.coverage.format is None
    assert config.blame.workers == 4
    assert config.blame.timeout is None
    assert config.report.format == "text"
    assert config.report.comment_on_pr is False
    assert config.github.is_pull_request is False
    assert config.coverage_paths() == [tmp_path.resolve() / "coverage.xml"]


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text(
        """
min_threshold: 75
base_branch: main
enforce_per_committer: true
window:
  from: "2024-01-01T00:00:00+00:00"
  to: 2024-06-30
coverage:
  files:
    - build/coverage.xml
    - build/lcov.info
  format: LCOV
blame:
  workers: 8
  timeout: 30
report:
  format: markdown
  comment_on_pr: yes
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path / ".covgate.yml", env={})

    gating = config.gating
    assert gating.min_threshold == 75
    assert gating.base_branch == "main"
    assert gating.enforce_per_committer is True
    assert gating.from_timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert gating.to_timestamp == datetime.combine(date(2024, 6, 30), time.max, tzinfo=timezone.utc)
    assert config.coverage.files == ("build/coverage.xml", "build/lcov.info")
    assert config.coverage.format == "lcov"
    assert config.blame.workers == 8
    assert config.blame.timeout == pytest.approx(30.0)
    assert config.report.format == "markdown"
    assert config.report.comment_on_pr is True


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text("min_threshold: 75\nbase_branch: main\n", encoding="utf-8")
    env = {
        "INPUT_MIN_THRESHOLD": "90",
        "INPUT_FILES": "a.xml, b.xml",
        "INPUT_BASE_BRANCH": "develop",
        "INPUT_FROM_TIMESTAMP": "1700000000",
        "INPUT_ENFORCE_PER_COMMITTER": "true",
    }

    config = load_config(tmp_path, env=env)

    assert config.gating.min_threshold == 90
    assert config.gating.base_branch == "develop"
    assert config.gating.enforce_per_committer is True
    assert config.gating.from_timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert config.coverage.files == ("a.xml", "b.xml")


def test_pull_request_base_ref_used_as_default_base_branch(tmp_path: Path) -> None:
    env = {
        "GITHUB_EVENT_NAME": "pull_request",
        "GITHUB_BASE_REF": "main",
        "GITHUB_REF_NAME": "12/merge",
        "GITHUB_TOKEN": "token",
    }

    config = load_config(tmp_path, env=env)

    assert config.gating.base_branch == "main"
    assert config.github.is_pull_request is True
    assert config.github.ref_name == "12/merge"
    assert config.github.token == "token"


def test_push_event_ignores_base_ref(tmp_path: Path) -> None:
    config = load_config(tmp_path, env={"GITHUB_EVENT_NAME": "push", "GITHUB_BASE_REF": "main"})

    assert config.gating.base_branch is None


@pytest.mark.parametrize("value", ["101", "-5", "eighty"])
def test_invalid_threshold_from_environment(tmp_path: Path, value: str) -> None:
    with pytest.raises(InvalidThreshold):
        load_config(tmp_path, env={"INPUT_MIN_THRESHOLD": value})


def test_invalid_yaml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text("min_threshold: [80\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(tmp_path, env={})


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text("- 80\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path, env={})


def test_inverted_window_rejected(tmp_path: Path) -> None:
    env = {"INPUT_FROM_TIMESTAMP": "2024-06-01", "INPUT_TO_TIMESTAMP": "2024-01-01"}

    with pytest.raises(ConfigError, match="after"):
        load_config(tmp_path, env=env)


def test_unknown_report_format_rejected(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text("report:\n  format: html\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="report format"):
        load_config(tmp_path, env={})


def test_with_overrides_replaces_only_given_values(tmp_path: Path) -> None:
    config = load_config(tmp_path, env={})

    updated = config.with_overrides(
        min_threshold=60,
        to_timestamp="2024-02-01T10:00:00",
        coverage_files=["out/lcov.info"],
        workers=2,
        report_format="json",
    )

    assert updated.gating.min_threshold == 60
    assert updated.gating.to_timestamp == datetime(2024, 2, 1, 10, tzinfo=timezone.utc)
    assert updated.gating.base_branch is None
    assert updated.coverage.files == ("out/lcov.info",)
    assert updated.blame.workers == 2
    assert updated.report.format == "json"
    assert config.gating.min_threshold == 80


def test_with_overrides_validates_threshold(tmp_path: Path) -> None:
    config = load_config(tmp_path, env={})

    with pytest.raises(InvalidThreshold):
        config.with_overrides(min_threshold=150)


def test_blank_base_branch_rejected() -> None:
    with pytest.raises(ConfigError):
        GatingConfig(base_branch="  ")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-03-01T12:00:00Z", datetime(2024, 3, 1, 12, tzinfo=timezone.utc)),
        ("2024-03-01", datetime(2024, 3, 1, tzinfo=timezone.utc)),
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        ("86400", datetime(1970, 1, 2, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp_accepts_common_forms(raw, expected) -> None:  # type: ignore[no-untyped-def]
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", ["", "yesterday", None, True])
def test_parse_timestamp_rejects_garbage(raw) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ConfigError):
        parse_timestamp(raw)


def test_date_only_upper_bound_covers_the_whole_day(tmp_path: Path) -> None:
    config = load_config(
        tmp_path, env={"INPUT_FROM_TIMESTAMP": "2024-02-01", "INPUT_TO_TIMESTAMP": "2024-02-01"}
    )

    assert config.gating.from_timestamp == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert config.gating.to_timestamp == datetime(
        2024, 2, 1, 23, 59, 59, 999999, tzinfo=timezone.utc
    )
    afternoon = datetime(2024, 2, 1, 15, 30, tzinfo=timezone.utc)
    assert config.gating.from_timestamp <= afternoon <= config.gating.to_timestamp

    updated = config.with_overrides(to_timestamp="2024-03-01")
    assert updated.gating.to_timestamp == datetime(
        2024, 3, 1, 23, 59, 59, 999999, tzinfo=timezone.utc
    )
    assert parse_timestamp("2024-03-01", end_of_day=True).date() == date(2024, 3, 1)


def test_blame_source_and_user_links(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text(
        "blame:\n  source: git\nreport:\n  link_users: false\n", encoding="utf-8"
    )

    config = load_config(tmp_path, env={})
    assert config.blame.source == "git"
    assert config.report.link_users is False

    from_env = load_config(tmp_path, env={"INPUT_USE_GITHUB_API_FOR_BLAME": "true"})
    assert from_env.blame.source == "github"

    assert load_config(tmp_path, env={}).with_overrides(blame_source="github").blame.source == "github"
    fresh = tmp_path / "fresh"
    fresh.mkdir()
    assert load_config(fresh, env={}).report.link_users is True


def test_unknown_blame_source_rejected(tmp_path: Path) -> None:
    (tmp_path / ".covgate.yml").write_text("blame:\n  source: svn\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="blame source"):
        load_config(tmp_path, env={})
