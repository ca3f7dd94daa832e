"""Mapping of report file names onto repository-relative paths."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


def resolve_report_path(
    filename: str,
    sources: Sequence[str] = (),
    root: Optional[Path] = None,
    base: Optional[Path] = None,
) -> str:
    """Return ``filename`` relative to the repository ``root``.

    Cobertura reports name classes relative to one of their ``<source>``
    directories and LCOV reports often carry absolute paths. Relative names
    and sources are read from ``base`` (the directory the check runs in,
    defaulting to ``root``); when ``base`` is a sub-directory of ``root`` the
    result gains its prefix. Names that cannot be placed under ``root`` are
    returned unchanged.
    """
    normalized = filename.strip().replace("\\", "/")
    if root is None or not normalized:
        return normalized

    repo_root = root.resolve()
    work_dir = base.resolve() if base is not None else repo_root
    candidate = Path(normalized)
    if candidate.is_absolute():
        return _relative_to(candidate, repo_root) or normalized

    for source in sources:
        source_dir = Path(source)
        if not source_dir.is_absolute():
            source_dir = work_dir / source_dir
        joined = source_dir / normalized
        if joined.exists():
            relative = _relative_to(joined, repo_root)
            if relative:
                return relative

    if work_dir != repo_root:
        in_work_dir = work_dir / normalized
        if in_work_dir.exists() or not (repo_root / normalized).exists():
            return _relative_to(in_work_dir, repo_root) or normalized
    return normalized


def _relative_to(path: Path, root: Path) -> Optional[str]:
    try:
        return path.resolve().relative_to(root).as_posix()
    except ValueError:
        return None


__all__ = ["resolve_report_path"]
