"""Scoped per-line attribution over a coverage index."""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from ..config import GatingConfig
from ..errors import FileHistoryError, HistoryUnavailable
from ..logging import get_logger
from ..models import UNATTRIBUTED, BlameEntry, BlameIndex, BlameScope, CoverageIndex, LineKey
from .history import HistoryProvider

_POLL_INTERVAL = 0.05

FileSlice = Tuple[Dict[LineKey, BlameEntry], bool]


class BlameResolver:
    """Resolves the committer of every indexed line under the configured scope.

    One task per file runs on a thread pool. Each task builds its own slice of
    entries; slices are merged only after every task has finished, and any
    fatal error, timeout or cancellation aborts the whole resolution.
    """

    def __init__(
        self,
        provider: HistoryProvider,
        *,
        workers: int = 4,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.provider = provider
        self.workers = max(1, workers)
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self.logger = get_logger("blame")

    def build_scope(self, config: GatingConfig) -> BlameScope:
        base_revision = None
        if config.base_branch is not None:
            base_revision = self.provider.merge_base(config.base_branch)
        return BlameScope(
            base_revision=base_revision,
            since=config.from_timestamp,
            until=config.to_timestamp,
        )

    def resolve(self, index: CoverageIndex, config: GatingConfig) -> BlameIndex:
        scope = self.build_scope(config)
        changed: Optional[Mapping[str, FrozenSet[int]]] = None
        if scope.base_revision is not None:
            changed = self.provider.changed_lines(scope.base_revision)
            self.logger.debug(
                "%d files differ from %s", len(changed), scope.base_revision
            )

        files = index.files()
        self.logger.info("Resolving blame for %d files with %d workers", len(files), self.workers)
        slices = self._fan_out(index, files, scope, changed)

        entries: Dict[LineKey, BlameEntry] = {}
        degraded: List[str] = []
        for path in files:
            file_entries, ok = slices[path]
            entries.update(file_entries)
            if not ok:
                degraded.append(path)
        return BlameIndex(entries, degraded_files=degraded)

    # ------------------------------------------------------------------
    # Internals

    def _fan_out(
        self,
        index: CoverageIndex,
        files: List[str],
        scope: BlameScope,
        changed: Optional[Mapping[str, FrozenSet[int]]],
    ) -> Dict[str, FileSlice]:
        if not files:
            return {}
        self._check_cancelled()

        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="covgate-blame")
        futures: Dict[Future, str] = {}
        try:
            for path in files:
                future = pool.submit(self._resolve_file, index, path, scope, changed)
                futures[future] = path

            pending: Set[Future] = set(futures)
            while pending:
                self._check_cancelled()
                wait_for = _POLL_INTERVAL
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise HistoryUnavailable(
                            f"Blame resolution timed out after {self.timeout}s "
                            f"with {len(pending)} files outstanding"
                        )
                    wait_for = min(wait_for, remaining)
                done, pending = wait(pending, timeout=wait_for, return_when=FIRST_EXCEPTION)
                for future in done:
                    error = future.exception()
                    if error is not None:
                        raise _as_history_error(futures[future], error)

            return {futures[future]: future.result() for future in futures}
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _resolve_file(
        self,
        index: CoverageIndex,
        path: str,
        scope: BlameScope,
        changed: Optional[Mapping[str, FrozenSet[int]]],
    ) -> FileSlice:
        if self.cancel_event.is_set():
            raise HistoryUnavailable("Blame resolution was cancelled")
        try:
            history = self.provider.resolve_blame(path, scope)
        except FileHistoryError as exc:
            self.logger.warning("%s; counting its lines as %s", exc, UNATTRIBUTED)
            return self._unresolved(index, path), False

        entries: Dict[LineKey, BlameEntry] = {}
        for entry in history:
            # Diffs key renamed files by their current name, which is the
            # path the provider blamed; the index keeps the report's name.
            changed_lines = None
            if changed is not None:
                changed_lines = changed.get(entry.file or path, frozenset())
            entries[(path, entry.line)] = _apply_scope(entry, path, scope, changed_lines)
        return entries, True

    @staticmethod
    def _unresolved(index: CoverageIndex, path: str) -> Dict[LineKey, BlameEntry]:
        return {
            (path, record.line): BlameEntry(
                file=path,
                line=record.line,
                identity=UNATTRIBUTED,
                reason="no-history",
            )
            for record in index.lines_for(path)
        }

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise HistoryUnavailable("Blame resolution was cancelled")


def _apply_scope(
    entry: BlameEntry,
    path: str,
    scope: BlameScope,
    changed_lines: Optional[FrozenSet[int]],
) -> BlameEntry:
    reason = entry.reason
    identity = entry.identity
    if entry.attributed:
        # Both constraints must hold when both are configured.
        if changed_lines is not None and entry.line not in changed_lines:
            identity, reason = UNATTRIBUTED, "inherited"
        elif not scope.within_window(entry.timestamp):
            identity, reason = UNATTRIBUTED, "outside-window"
    return BlameEntry(
        file=path,
        line=entry.line,
        identity=identity,
        timestamp=entry.timestamp,
        revision=entry.revision,
        name=entry.name,
        reason=reason,
    )


def _as_history_error(path: str, error: BaseException) -> HistoryUnavailable:
    if isinstance(error, HistoryUnavailable):
        return error
    wrapped = HistoryUnavailable(f"Blame resolution failed for {path}: {error}")
    wrapped.__cause__ = error
    return wrapped


__all__ = ["BlameResolver"]
