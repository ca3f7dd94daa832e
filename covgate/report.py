"""Rendering of gate results for consoles, pull requests and machines."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .models import CommitterStats, GateResult

if TYPE_CHECKING:
    from .git.github import GitHubUser

REPORT_TITLE = "Committer Coverage Report"
_PASS_MARK = "✅"
_FAIL_MARK = "❌"


def result_to_dict(result: GateResult) -> Dict[str, Any]:
    """Return a JSON-serialisable view of ``result`` that preserves ordering."""
    return {
        "status": result.status,
        "passed": result.passed,
        "threshold": result.threshold,
        "enforce_per_committer": result.enforce_per_committer,
        "overall_percentage": round(result.overall_percentage, 4),
        "total_lines": result.total_lines,
        "covered_lines": result.covered_lines,
        "per_committer": [_stats_to_dict(stats) for stats in result.per_committer],
        "violating_committers": sorted(result.violating_committers),
        "unattributed": _stats_to_dict(result.unattributed) if result.unattributed else None,
        "rejected_fragments": list(result.rejected_fragments),
        "degraded_files": list(result.degraded_files),
    }


def render_json(result: GateResult) -> str:
    return json.dumps(result_to_dict(result), indent=2, ensure_ascii=False)


def render_text(result: GateResult) -> str:
    lines = [
        f"{REPORT_TITLE}: {result.status}",
        (
            f"Total coverage: {result.covered_lines} / {result.total_lines} "
            f"({result.overall_percentage:.2f}%), threshold {result.threshold}%"
        ),
    ]
    if not result.per_committer:
        lines.append("No committers with attributable lines in scope.")
    for stats in result.per_committer:
        marker = "FAIL" if stats.identity in result.violating_committers else "ok"
        lines.append(
            f"  [{marker:>4}] {_display_name(stats)}: {stats.covered_lines} / "
            f"{stats.total_lines} ({stats.percentage:.2f}%)"
        )
    if result.unattributed is not None:
        lines.append(f"Unattributed lines: {result.unattributed.total_lines}")
    lines.extend(_anomaly_lines(result, bullet="  - "))
    return "\n".join(lines)


def render_markdown(
    result: GateResult,
    *,
    footer: Optional[str] = None,
    users: Optional[Mapping[str, "GitHubUser"]] = None,
) -> str:
    """Render the pull request table; ``users`` maps identities to GitHub profiles."""
    lines = [
        f"# {REPORT_TITLE}",
        (
            f"Total coverage: {result.covered_lines} / {result.total_lines} "
            f"({result.overall_percentage:.2f}%) {_mark(result.passed)}"
        ),
        "",
        f"Minimum threshold: {result.threshold}%"
        + (" (enforced per committer)" if result.enforce_per_committer else ""),
        "",
    ]
    if result.per_committer:
        lines.append("| **User** | **Lines** | **Covered** | **% Covered** |")
        lines.append("|------|-------:|---------:|-----------|")
        for stats in result.per_committer:
            passed = stats.identity not in result.violating_committers
            lines.append(
                f"| {_user_cell(stats, users)} | {stats.total_lines} | "
                f"{stats.covered_lines} | {stats.percentage:.2f} {_mark(passed)} |"
            )
    else:
        lines.append("_No committers with attributable lines in scope._")

    if result.unattributed is not None:
        lines.append("")
        lines.append(
            f"{result.unattributed.total_lines} coverable lines were not attributed to any committer."
        )

    anomalies = _anomaly_lines(result, bullet="- ")
    if anomalies:
        lines.append("")
        lines.extend(anomalies)

    if footer:
        lines.append("")
        lines.append(footer)
    return "\n".join(lines) + "\n"


def _anomaly_lines(result: GateResult, *, bullet: str) -> List[str]:
    lines: List[str] = []
    if result.rejected_fragments:
        lines.append(f"Rejected coverage fragments ({len(result.rejected_fragments)}):")
        lines.extend(f"{bullet}{message}" for message in result.rejected_fragments)
    if result.degraded_files:
        lines.append(f"Files without readable history ({len(result.degraded_files)}):")
        lines.extend(f"{bullet}{path}" for path in result.degraded_files)
    return lines


def _stats_to_dict(stats: CommitterStats) -> Dict[str, Any]:
    return {
        "identity": stats.identity,
        "name": stats.name,
        "total_lines": stats.total_lines,
        "covered_lines": stats.covered_lines,
        "percentage": round(stats.percentage, 4),
    }


def _display_name(stats: CommitterStats) -> str:
    if stats.name and stats.name != stats.identity:
        return f"{stats.name} <{stats.identity}>"
    return stats.identity


def _user_cell(stats: CommitterStats, users: Optional[Mapping[str, "GitHubUser"]]) -> str:
    user = users.get(stats.identity) if users else None
    if user is None:
        return _escape(_display_name(stats))
    avatar = f'<img src="{user.avatar_url}" width="20"/> ' if user.avatar_url else ""
    return f'<a href="{user.url}">{avatar}{_escape(user.login)}</a>'


def _escape(value: str) -> str:
    return value.replace("|", "\\|").replace("<", "&lt;").replace(">", "&gt;")


def _mark(passed: bool) -> str:
    return _PASS_MARK if passed else _FAIL_MARK


RENDERERS = {
    "text": render_text,
    "markdown": render_markdown,
    "json": render_json,
}


def render(result: GateResult, fmt: str = "text") -> str:
    try:
        renderer = RENDERERS[fmt]
    except KeyError as exc:
        raise ValueError(f"Unknown report format: {fmt}") from exc
    return renderer(result)


__all__ = [
    "REPORT_TITLE",
    "render",
    "render_json",
    "render_markdown",
    "render_text",
    "result_to_dict",
]
