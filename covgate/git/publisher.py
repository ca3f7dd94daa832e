"""Pull-request comment publishing via the GitHub CLI."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..logging import get_logger


def parse_pr_number(ref_name: Optional[str]) -> Optional[int]:
    """Extract the pull request number from refs such as ``123/merge``.

    Full refs (``refs/pull/123/merge``) are accepted as well.
    """
    if not ref_name:
        return None
    parts = [part for part in ref_name.split("/") if part]
    if len(parts) >= 3 and parts[0] == "refs" and parts[1] == "pull":
        parts = parts[2:]
    if len(parts) < 2:
        return None
    try:
        number = int(parts[0])
    except ValueError:
        return None
    return number if number > 0 else None


class CommentPublisher:
    """Posts coverage summaries as pull request comments."""

    def __init__(self, runner: Callable[..., str] | None = None) -> None:
        self._runner = runner or self._default_runner
        self.logger = get_logger("publisher")

    def post_pr_comment(
        self,
        repo_path: str,
        pr_number: int,
        body: str,
        *,
        token: Optional[str] = None,
    ) -> bool:
        """Comment on ``pr_number``; returns ``False`` when delivery fails."""
        repo = Path(repo_path)
        env = None
        if token:
            env = os.environ.copy()
            env.setdefault("GH_TOKEN", token)

        args = ["gh", "pr", "comment", str(pr_number), "--body", body]
        try:
            self._run(args, cwd=repo, env=env)
        except (subprocess.CalledProcessError, FileNotFoundError) as exc:
            self.logger.warning("Failed to comment on pull request #%d: %s", pr_number, exc)
            return False
        self.logger.info("Posted coverage summary to pull request #%d", pr_number)
        return True

    # ------------------------------------------------------------------
    # Helpers

    def _run(
        self,
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        return self._runner(args, cwd=cwd, env=env, capture_output=capture_output)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
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


__all__ = ["CommentPublisher", "parse_pr_number"]
