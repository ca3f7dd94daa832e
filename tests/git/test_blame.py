"""Blame resolver scoping and concurrency tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from covgate.config import GatingConfig
from covgate.errors import HistoryUnavailable
from covgate.git.blame import BlameResolver
from covgate.models import UNATTRIBUTED, BlameScope, CoverageIndex
from tests._fixtures.coverage import covered_range, make_index
from tests._fixtures.history import DEFAULT_TIME, FakeHistoryProvider, blame_lines


def _scenario_a_provider() -> FakeHistoryProvider:
    return FakeHistoryProvider(
        {
            "a.rs": blame_lines("a.rs", range(1, 16), "alice")
            + blame_lines("a.rs", range(16, 21), "bob", revision="b" * 40)
        }
    )


def test_unscoped_resolution_keeps_every_author(scenario_a_index: CoverageIndex) -> None:
    provider = _scenario_a_provider()

    blame = BlameResolver(provider).resolve(scenario_a_index, GatingConfig())

    assert len(blame) == 20
    assert blame[("a.rs", 1)].identity == "alice"
    assert blame[("a.rs", 20)].identity == "bob"
    assert blame.identities() == frozenset({"alice", "bob"})
    assert blame.degraded_files == ()
    assert provider.scopes == [BlameScope()]
    assert provider.changed_calls == []


def test_time_window_marks_older_lines_unattributed(scenario_a_index: CoverageIndex) -> None:
    old = DEFAULT_TIME - timedelta(days=30)
    provider = FakeHistoryProvider(
        {
            "a.rs": blame_lines("a.rs", range(1, 11), "alice", timestamp=old)
            + blame_lines("a.rs", range(11, 21), "bob")
        }
    )
    config = GatingConfig(from_timestamp=DEFAULT_TIME - timedelta(days=1))

    blame = BlameResolver(provider).resolve(scenario_a_index, config)

    assert blame[("a.rs", 5)].identity == UNATTRIBUTED
    assert blame[("a.rs", 5)].reason == "outside-window"
    assert blame[("a.rs", 15)].identity == "bob"
    assert blame.identities() == frozenset({"bob"})


def test_window_bounds_are_inclusive(scenario_a_index: CoverageIndex) -> None:
    provider = _scenario_a_provider()
    config = GatingConfig(from_timestamp=DEFAULT_TIME, to_timestamp=DEFAULT_TIME)

    blame = BlameResolver(provider).resolve(scenario_a_index, config)

    assert blame.identities() == frozenset({"alice", "bob"})


def test_base_branch_limits_attribution_to_changed_lines(
    scenario_a_index: CoverageIndex,
) -> None:
    provider = _scenario_a_provider()
    provider.merge_bases["main"] = "base123"
    provider.changed = {"a.rs": frozenset({14, 15, 16})}

    blame = BlameResolver(provider).resolve(scenario_a_index, GatingConfig(base_branch="main"))

    attributed = sorted(key[1] for key, entry in blame.items() if entry.attributed)
    assert attributed == [14, 15, 16]
    assert blame[("a.rs", 1)].reason == "inherited"
    assert provider.changed_calls == ["base123"]
    assert provider.scopes[0].base_revision == "base123"


def test_base_branch_and_window_intersect(scenario_a_index: CoverageIndex) -> None:
    recent = DEFAULT_TIME
    old = DEFAULT_TIME - timedelta(days=90)
    provider = FakeHistoryProvider(
        {
            "a.rs": blame_lines("a.rs", range(1, 11), "alice", timestamp=old)
            + blame_lines("a.rs", range(11, 21), "bob", timestamp=recent)
        },
        merge_bases={"main": "base123"},
        changed={"a.rs": frozenset({5, 6, 12, 13})},
    )
    config = GatingConfig(
        base_branch="main",
        from_timestamp=DEFAULT_TIME - timedelta(days=7),
    )

    blame = BlameResolver(provider).resolve(scenario_a_index, config)

    attributed = sorted(key[1] for key, entry in blame.items() if entry.attributed)
    assert attributed == [12, 13]
    assert blame[("a.rs", 5)].reason == "outside-window"


def test_no_changes_since_base_leaves_everything_unattributed(
    scenario_a_index: CoverageIndex,
) -> None:
    provider = _scenario_a_provider()
    provider.merge_bases["main"] = "base123"

    blame = BlameResolver(provider).resolve(scenario_a_index, GatingConfig(base_branch="main"))

    assert len(blame) == 20
    assert blame.identities() == frozenset()
    assert {entry.reason for entry in blame.values()} == {"inherited"}


def test_unresolvable_base_branch_is_fatal(scenario_a_index: CoverageIndex) -> None:
    provider = _scenario_a_provider()

    with pytest.raises(HistoryUnavailable, match="release"):
        BlameResolver(provider).resolve(scenario_a_index, GatingConfig(base_branch="release"))


def test_file_without_history_degrades_to_unattributed() -> None:
    index = make_index(
        ("good.py", covered_range(range(1, 4), True)),
        ("generated.py", covered_range(range(1, 3), False)),
    )
    provider = FakeHistoryProvider(
        {"good.py": blame_lines("good.py", range(1, 4), "carol")},
        failing=["generated.py"],
    )

    blame = BlameResolver(provider, workers=2).resolve(index, GatingConfig())

    assert blame.degraded_files == ("generated.py",)
    assert blame[("generated.py", 1)].identity == UNATTRIBUTED
    assert blame[("generated.py", 2)].reason == "no-history"
    assert blame[("good.py", 3)].identity == "carol"


def test_fatal_history_error_aborts_resolution() -> None:
    index = make_index(
        ("a.py", covered_range(range(1, 3), True)),
        ("b.py", covered_range(range(1, 3), True)),
    )
    provider = FakeHistoryProvider(
        {"a.py": blame_lines("a.py", range(1, 3), "dave")},
        fatal=["b.py"],
    )

    with pytest.raises(HistoryUnavailable, match="b.py"):
        BlameResolver(provider, workers=2).resolve(index, GatingConfig())


def test_timeout_aborts_with_history_unavailable() -> None:
    index = make_index(("slow.py", covered_range(range(1, 3), True)))
    provider = FakeHistoryProvider(
        {"slow.py": blame_lines("slow.py", range(1, 3), "erin")}, delay=0.5
    )

    with pytest.raises(HistoryUnavailable, match="timed out"):
        BlameResolver(provider, timeout=0.05).resolve(index, GatingConfig())


def test_pre_cancelled_event_aborts_before_any_lookup() -> None:
    index = make_index(("a.py", covered_range(range(1, 3), True)))
    provider = FakeHistoryProvider({"a.py": blame_lines("a.py", range(1, 3), "frank")})
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(HistoryUnavailable, match="cancelled"):
        BlameResolver(provider, cancel_event=cancel).resolve(index, GatingConfig())
    assert provider.calls == []


def test_parallel_resolution_matches_sequential() -> None:
    files = [f"pkg/mod_{number}.py" for number in range(12)]
    index = make_index(*[(path, covered_range(range(1, 6), True)) for path in files])
    blame_data = {
        path: blame_lines(path, range(1, 6), f"dev{number % 3}@example.com")
        for number, path in enumerate(files)
    }

    sequential = BlameResolver(FakeHistoryProvider(blame_data), workers=1).resolve(
        index, GatingConfig()
    )
    parallel = BlameResolver(FakeHistoryProvider(blame_data), workers=8).resolve(
        index, GatingConfig()
    )

    assert dict(sequential) == dict(parallel)


def test_uncommitted_lines_stay_unattributed_under_window(
    scenario_a_index: CoverageIndex,
) -> None:
    provider = FakeHistoryProvider(
        {"a.rs": blame_lines("a.rs", range(1, 21), UNATTRIBUTED)}
    )
    config = GatingConfig(to_timestamp=datetime(2030, 1, 1, tzinfo=timezone.utc))

    blame = BlameResolver(provider).resolve(scenario_a_index, config)

    assert blame.identities() == frozenset()


def test_cancellation_during_fan_out_stops_outstanding_lookups() -> None:
    files = ["a.py", "b.py", "c.py"]
    index = make_index(*[(path, covered_range(range(1, 3), True)) for path in files])
    cancel = threading.Event()

    class CancellingProvider(FakeHistoryProvider):
        def resolve_blame(self, file: str, scope: BlameScope):  # type: ignore[override]
            cancel.set()
            return super().resolve_blame(file, scope)

    provider = CancellingProvider(
        {path: blame_lines(path, range(1, 3), "gina") for path in files}, delay=0.2
    )

    with pytest.raises(HistoryUnavailable, match="cancelled"):
        BlameResolver(provider, workers=1, cancel_event=cancel).resolve(index, GatingConfig())
    assert provider.calls == ["a.py"]


def test_renamed_file_uses_changed_lines_of_blamed_path() -> None:
    index = make_index(("old.py", covered_range(range(1, 4), True)))
    provider = FakeHistoryProvider(
        {
            "old.py": blame_lines("new.py", [1, 3], "alice")
            + blame_lines("new.py", [2], "bob", revision="b" * 40)
        },
        merge_bases={"main": "base123"},
        changed={"new.py": frozenset({2})},
    )

    blame = BlameResolver(provider).resolve(index, GatingConfig(base_branch="main"))

    assert blame[("old.py", 2)].identity == "bob"
    assert blame[("old.py", 1)].reason == "inherited"
    assert blame.identities() == frozenset({"bob"})
