"""Diff inspection utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Set

from ..errors import HistoryUnavailable

_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")


@dataclass(frozen=True)
class DiffResult:
    """New-side line numbers that differ from a base revision, per current path."""

    base: str
    changed_lines: Mapping[str, FrozenSet[int]]

    def lines_for(self, path: str) -> FrozenSet[int]:
        return self.changed_lines.get(path, frozenset())


class DiffAnalyzer:
    """Computes which lines of the working tree changed since a base revision."""

    def __init__(self, runner: Callable[..., str] | None = None) -> None:
        self._runner = runner or self._default_runner

    def compute(self, repo_path: str, diff_base: str) -> DiffResult:
        repo = Path(repo_path)
        if not (repo / ".git").exists():
            raise HistoryUnavailable(f"{repo_path} is not a Git repository")

        args = [
            "git",
            "-c",
            "core.quotepath=off",
            "diff",
            "--no-color",
            "--no-ext-diff",
            "--find-renames",
            "--unified=0",
            diff_base,
            "--",
        ]
        output = self._run(args, cwd=repo, capture_output=True)
        return DiffResult(base=diff_base, changed_lines=parse_changed_lines(output))

    def _run(
        self,
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        return self._runner(args, cwd=cwd, capture_output=capture_output)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        import subprocess

        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=capture_output,
        )
        return completed.stdout if capture_output else ""


def parse_changed_lines(diff_text: str) -> Dict[str, FrozenSet[int]]:
    """Collect added or modified new-side line numbers from a zero-context diff."""
    changed: Dict[str, Set[int]] = {}
    current: Optional[str] = None
    in_header = False

    for line in diff_text.splitlines():
        if line.startswith("diff --git "):
            current = None
            in_header = True
            continue
        if in_header and line.startswith("+++ "):
            current = _strip_prefix(line[4:])
            if current is not None:
                changed.setdefault(current, set())
            continue
        if current is None:
            continue
        if line.startswith("@@"):
            in_header = False
        match = _HUNK_HEADER.match(line)
        if not match:
            continue
        start = int(match.group(1))
        count = int(match.group(2)) if match.group(2) is not None else 1
        # A zero count marks a pure deletion; nothing on the new side changed.
        changed[current].update(range(start, start + count))

    return {path: frozenset(lines) for path, lines in changed.items()}


def _strip_prefix(raw: str) -> Optional[str]:
    path = raw.rstrip("\t").strip()
    if path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    if path == "/dev/null":
        return None
    if path.startswith("b/"):
        return path[2:]
    return path


__all__ = ["DiffAnalyzer", "DiffResult", "parse_changed_lines"]
