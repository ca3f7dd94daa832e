"""Version-control history access for line attribution."""

from __future__ import annotations

import re
import subprocess
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Sequence

from ..errors import FileHistoryError, HistoryUnavailable
from ..logging import get_logger
from ..models import UNATTRIBUTED, BlameEntry, BlameScope
from .diff import DiffAnalyzer

UNKNOWN_IDENTITY = "unknown"

_HEADER_PATTERN = re.compile(r"^([0-9a-f]{40}|[0-9a-f]{64}) (\d+) (\d+)(?: (\d+))?$")
_ZERO_REVISION = re.compile(r"^0+$")


class HistoryProvider(Protocol):
    """Capability exposing flattened line authorship for the blame resolver.

    ``repo`` is the working-tree top level every path is relative to, or
    ``None`` when the provider has no working tree and coverage paths are
    taken as already repository-relative.
    """

    repo: Optional[Path]

    def resolve_blame(self, file: str, scope: BlameScope) -> Sequence[BlameEntry]:
        """Return one entry per line of ``file`` as it currently exists.

        ``BlameEntry.file`` names the path that was actually blamed, which
        differs from ``file`` when a rename was followed.
        """

    def merge_base(self, branch: str) -> str:
        """Return the merge-base revision between HEAD and ``branch``."""

    def changed_lines(self, base_revision: str) -> Mapping[str, FrozenSet[int]]:
        """Return current line numbers that differ from ``base_revision``, per path."""


class GitHistoryProvider:
    """History provider backed by the ``git`` executable.

    Every command goes through an injectable runner with the signature
    ``runner(args, *, cwd, capture_output, env=None) -> str`` that raises
    :class:`subprocess.CalledProcessError` on failure.
    """

    def __init__(
        self,
        repo_path: str | Path,
        *,
        runner: Callable[..., str] | None = None,
        diff_analyzer: DiffAnalyzer | None = None,
    ) -> None:
        self.repo = Path(repo_path)
        self._runner = runner or self._default_runner
        self._diff_analyzer = diff_analyzer or DiffAnalyzer(runner=self._runner)
        self._renames: Optional[Dict[str, str]] = None
        self._renames_lock = threading.Lock()
        self.logger = get_logger("history")

    def verify(self) -> Path:
        """Ensure the repository is readable and return its top-level directory."""
        try:
            output = self._run(["git", "rev-parse", "--show-toplevel"])
        except subprocess.CalledProcessError as exc:
            raise HistoryUnavailable(
                f"{self.repo} is not a Git repository: {_stderr(exc)}"
            ) from exc
        toplevel = output.strip()
        if toplevel:
            self.repo = Path(toplevel)
        return self.repo

    def resolve_blame(self, file: str, scope: BlameScope) -> Sequence[BlameEntry]:
        # ``scope`` is applied by the resolver so providers stay plain
        # authorship lookups.
        try:
            return self._blame_path(file)
        except FileHistoryError:
            current = self.follow_renames(file)
            if current is None:
                raise
            self.logger.debug("Following rename %s -> %s", file, current)
        return self._blame_path(current)

    def merge_base(self, branch: str) -> str:
        candidates = [branch]
        if not branch.startswith("origin/"):
            candidates.append(f"origin/{branch}")
        for candidate in candidates:
            try:
                output = self._run(["git", "merge-base", "HEAD", candidate])
            except subprocess.CalledProcessError:
                self.logger.debug("No merge-base with %s", candidate)
                continue
            revision = output.strip()
            if revision:
                self.logger.info("Merge-base with %s is %s", candidate, revision)
                return revision
        raise HistoryUnavailable(f"Cannot resolve a merge-base between HEAD and {branch!r}")

    def changed_lines(self, base_revision: str) -> Mapping[str, FrozenSet[int]]:
        try:
            result = self._diff_analyzer.compute(str(self.repo), base_revision)
        except subprocess.CalledProcessError as exc:
            raise HistoryUnavailable(
                f"Failed to diff against {base_revision}: {_stderr(exc)}"
            ) from exc
        return result.changed_lines

    def follow_renames(self, path: str) -> Optional[str]:
        """Return the current name of ``path`` after applying recorded renames."""
        renames = self._rename_map()
        current = path
        seen = {path}
        while current in renames:
            current = renames[current]
            if current in seen:
                return None
            seen.add(current)
        return current if current != path else None

    # ------------------------------------------------------------------
    # Internals

    def _blame_path(self, path: str) -> Sequence[BlameEntry]:
        # Blame runs against the working tree so line numbers match local coverage.
        try:
            output = self._run(["git", "blame", "--porcelain", "-M", "--", path])
        except subprocess.CalledProcessError as exc:
            raise FileHistoryError(path, _stderr(exc)) from exc
        return parse_blame_porcelain(output, path)

    def _rename_map(self) -> Dict[str, str]:
        with self._renames_lock:
            if self._renames is None:
                try:
                    output = self._run(
                        [
                            "git",
                            "-c",
                            "core.quotepath=off",
                            "log",
                            "-M",
                            "--diff-filter=R",
                            "--name-status",
                            "--format=",
                            "--reverse",
                            "HEAD",
                        ]
                    )
                except subprocess.CalledProcessError as exc:
                    self.logger.debug("Rename history unavailable: %s", _stderr(exc))
                    output = ""
                self._renames = parse_renames(output)
            return self._renames

    def _run(self, args: Iterable[str], *, env: Optional[Dict[str, str]] = None) -> str:
        command = list(args)
        kwargs: Dict[str, object] = {"cwd": self.repo, "capture_output": True}
        if env is not None:
            kwargs["env"] = env
        try:
            return self._runner(command, **kwargs)
        except FileNotFoundError as exc:
            raise HistoryUnavailable(f"Unable to locate the {command[0]!r} executable") from exc
        except subprocess.CalledProcessError as exc:
            if "not a git repository" in _stderr(exc).lower():
                raise HistoryUnavailable(
                    f"{self.repo} is not a Git repository: {_stderr(exc)}"
                ) from exc
            raise

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""


def parse_blame_porcelain(output: str, file: str) -> List[BlameEntry]:
    """Parse ``git blame --porcelain`` output for the blamed path ``file``.

    Commit metadata is only printed the first time a commit appears, so it is
    cached per revision and reused for later line groups.
    """
    entries: List[BlameEntry] = []
    commits: Dict[str, Dict[str, str]] = {}
    current: Optional[str] = None
    final_line = 0

    for line in output.split("\n"):
        if line.startswith("\t"):
            if current is not None:
                entries.append(_entry(file, final_line, current, commits[current]))
            continue
        match = _HEADER_PATTERN.match(line)
        if match:
            current = match.group(1)
            final_line = int(match.group(3))
            commits.setdefault(current, {})
            continue
        if current is None or not line:
            continue
        key, _, value = line.partition(" ")
        if key in {"author", "author-mail", "author-time"}:
            commits[current][key] = value

    return entries


def parse_renames(output: str) -> Dict[str, str]:
    """Map old paths to new paths from chronological ``--name-status`` output."""
    renames: Dict[str, str] = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) != 3 or not parts[0].startswith("R"):
            continue
        old_path, new_path = parts[1], parts[2]
        renames[old_path] = new_path
    return renames


def _entry(file: str, line: int, revision: str, info: Mapping[str, str]) -> BlameEntry:
    timestamp = _parse_time(info.get("author-time"))
    if _ZERO_REVISION.match(revision):
        return BlameEntry(
            file=file,
            line=line,
            identity=UNATTRIBUTED,
            timestamp=timestamp,
            revision=revision,
            reason="uncommitted",
        )
    email = info.get("author-mail", "").strip().strip("<>").strip()
    name = info.get("author", "").strip() or None
    return BlameEntry(
        file=file,
        line=line,
        identity=email or UNKNOWN_IDENTITY,
        timestamp=timestamp,
        revision=revision,
        name=name,
    )


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def _stderr(exc: subprocess.CalledProcessError) -> str:
    stderr = exc.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return (stderr or str(exc)).strip()


__all__ = [
    "GitHistoryProvider",
    "HistoryProvider",
    "UNKNOWN_IDENTITY",
    "parse_blame_porcelain",
    "parse_renames",
]
