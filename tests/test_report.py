"""Report rendering tests."""

from __future__ import annotations

import json

import pytest

from covgate.analysis import build_stats
from covgate.git.github import GitHubUser
from covgate.models import UNATTRIBUTED, GateResult
from covgate.report import REPORT_TITLE, render, render_markdown, render_text, result_to_dict


def _result(**overrides) -> GateResult:  # type: ignore[no-untyped-def]
    values = dict(
        overall_percentage=50.0,
        per_committer=(
            build_stats("bob@example.com", 5, 0, name="Bob"),
            build_stats("alice@example.com", 15, 10, name="Alice"),
        ),
        passed=False,
        threshold=60,
        violating_committers=frozenset({"bob@example.com"}),
        enforce_per_committer=True,
        total_lines=20,
        covered_lines=10,
        unattributed=build_stats(UNATTRIBUTED, 4, 1),
        rejected_fragments=("Malformed coverage data for x.py: non-positive line number 0",),
        degraded_files=("gen/schema.py",),
    )
    values.update(overrides)
    return GateResult(**values)


def test_result_to_dict_preserves_committer_order() -> None:
    data = result_to_dict(_result())

    assert data["status"] == "FAILED"
    assert [row["identity"] for row in data["per_committer"]] == [
        "bob@example.com",
        "alice@example.com",
    ]
    assert data["violating_committers"] == ["bob@example.com"]
    assert data["unattributed"]["total_lines"] == 4
    assert data["degraded_files"] == ["gen/schema.py"]


def test_json_rendering_is_valid_json() -> None:
    payload = json.loads(render(_result(), "json"))

    assert payload["overall_percentage"] == 50.0
    assert payload["threshold"] == 60


def test_text_rendering_marks_violators() -> None:
    text = render_text(_result())

    assert text.startswith(f"{REPORT_TITLE}: FAILED")
    assert "Total coverage: 10 / 20 (50.00%), threshold 60%" in text
    assert "[FAIL] Bob <bob@example.com>: 0 / 5 (0.00%)" in text
    assert "[  ok] Alice <alice@example.com>: 10 / 15 (66.67%)" in text
    assert "Unattributed lines: 4" in text
    assert "gen/schema.py" in text


def test_markdown_rendering_builds_table_and_footer() -> None:
    markdown = render_markdown(_result(), footer="_footer_")

    assert markdown.startswith(f"# {REPORT_TITLE}\n")
    assert "| **User** | **Lines** | **Covered** | **% Covered** |" in markdown
    assert "| Bob &lt;bob@example.com&gt; | 5 | 0 | 0.00 ❌ |" in markdown
    assert "| Alice &lt;alice@example.com&gt; | 15 | 10 | 66.67 ✅ |" in markdown
    assert "(enforced per committer)" in markdown
    assert markdown.rstrip().endswith("_footer_")


def test_empty_result_renders_placeholder() -> None:
    result = _result(
        overall_percentage=100.0,
        per_committer=(),
        passed=True,
        violating_committers=frozenset(),
        total_lines=0,
        covered_lines=0,
        unattributed=None,
        rejected_fragments=(),
        degraded_files=(),
    )

    assert "No committers with attributable lines in scope." in render_text(result)
    assert "_No committers with attributable lines in scope._" in render_markdown(result)


def test_unknown_format_rejected() -> None:
    with pytest.raises(ValueError, match="html"):
        render(_result(), "html")


def test_markdown_links_known_github_users() -> None:
    users = {
        "alice@example.com": GitHubUser(
            login="alice-gh",
            url="https://github.com/alice-gh",
            avatar_url="https://avatars.example/alice",
        )
    }

    markdown = render_markdown(_result(), users=users)

    assert (
        '| <a href="https://github.com/alice-gh"><img src="https://avatars.example/alice" '
        'width="20"/> alice-gh</a> | 15 | 10 | 66.67 ✅ |'
    ) in markdown
    assert "| Bob &lt;bob@example.com&gt; | 5 | 0 | 0.00 ❌ |" in markdown
