"""GitHub API access through the GitHub CLI: GraphQL blame and profile lookup."""

from __future__ import annotations

import json
import os
import subprocess
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from ..errors import ConfigError, FileHistoryError, HistoryUnavailable
from ..logging import get_logger
from ..models import BlameEntry
from .diff import DiffAnalyzer
from .history import UNKNOWN_IDENTITY, GitHistoryProvider

BLAME_QUERY = """
query($owner: String!, $name: String!, $expression: String!, $path: String!) {
  repository(owner: $owner, name: $name) {
    object(expression: $expression) {
      ... on Commit {
        blame(path: $path) {
          ranges {
            startingLine
            endingLine
            commit {
              oid
              authoredDate
              author {
                name
                email
              }
            }
          }
        }
      }
    }
  }
}
"""

_FATAL_MARKERS = (
    "http 401",
    "bad credentials",
    "gh auth login",
    "could not resolve to a repository",
)


def api_hostname(api_url: Optional[str]) -> Optional[str]:
    """Return the ``gh --hostname`` value for a GitHub Enterprise API URL."""
    if not api_url:
        return None
    host = urlparse(api_url).hostname
    if not host or host in {"api.github.com", "github.com"}:
        return None
    return host


def gh_environment(token: Optional[str], hostname: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Return an environment carrying ``token`` for ``gh``, or ``None`` to inherit."""
    if not token:
        return None
    env = os.environ.copy()
    env.setdefault("GH_ENTERPRISE_TOKEN" if hostname else "GH_TOKEN", token)
    return env


class GitHubHistoryProvider(GitHistoryProvider):
    """History provider that reads blame from the GitHub GraphQL API.

    Merge-bases, diffs and rename history still come from the local clone.
    Blame is read at the commit checked out in the working tree, so edits
    that were never pushed are invisible to it.
    """

    def __init__(
        self,
        repo_path: str | Path,
        repository: str,
        *,
        revision: Optional[str] = None,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        runner: Callable[..., str] | None = None,
        diff_analyzer: DiffAnalyzer | None = None,
    ) -> None:
        super().__init__(repo_path, runner=runner, diff_analyzer=diff_analyzer)
        owner, _, name = repository.strip().partition("/")
        if not owner or not name or "/" in name:
            raise ConfigError(f"GitHub repository must look like owner/name, got {repository!r}")
        self.owner = owner
        self.name = name
        self.hostname = api_hostname(api_url)
        self._env = gh_environment(token, self.hostname)
        self._revision = revision
        self._revision_lock = threading.Lock()
        self.logger = get_logger("github")

    def revision(self) -> str:
        """Return the commit blame is requested at (``HEAD`` of the clone by default)."""
        with self._revision_lock:
            if self._revision is None:
                try:
                    output = self._run(["git", "rev-parse", "HEAD"])
                except subprocess.CalledProcessError as exc:
                    raise HistoryUnavailable(f"Cannot resolve HEAD in {self.repo}") from exc
                self._revision = output.strip()
            return self._revision

    def _blame_path(self, path: str) -> Sequence[BlameEntry]:
        args = ["gh", "api", "graphql"]
        if self.hostname:
            args.extend(["--hostname", self.hostname])
        args.extend(
            [
                "-f",
                f"query={BLAME_QUERY}",
                "-f",
                f"owner={self.owner}",
                "-f",
                f"name={self.name}",
                "-f",
                f"expression={self.revision()}",
                "-f",
                f"path={path}",
            ]
        )
        try:
            output = self._run(args, env=self._env)
        except subprocess.CalledProcessError as exc:
            message = _stderr(exc)
            if any(marker in message.lower() for marker in _FATAL_MARKERS):
                raise HistoryUnavailable(
                    f"GitHub API rejected blame for {self.owner}/{self.name}: {message}"
                ) from exc
            raise FileHistoryError(path, message) from exc
        return parse_graphql_blame(output, path)


def parse_graphql_blame(payload: str, file: str) -> List[BlameEntry]:
    """Expand the blame ranges of a GraphQL response into per-line entries."""
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise FileHistoryError(file, f"invalid GraphQL response: {exc}") from exc

    errors = document.get("errors") if isinstance(document, dict) else None
    if errors:
        messages = [
            str(error.get("message", error)) if isinstance(error, dict) else str(error)
            for error in errors
        ]
        raise FileHistoryError(file, "; ".join(messages))

    target = ((document.get("data") or {}).get("repository") or {}).get("object") or {}
    blame = target.get("blame")
    if not blame:
        raise FileHistoryError(file, "no blame returned for this revision")

    entries: List[BlameEntry] = []
    for item in blame.get("ranges") or []:
        commit = item.get("commit") or {}
        author = commit.get("author") or {}
        email = (author.get("email") or "").strip()
        name = (author.get("name") or "").strip() or None
        timestamp = _parse_iso(commit.get("authoredDate"))
        try:
            start, end = int(item["startingLine"]), int(item["endingLine"])
        except (KeyError, TypeError, ValueError) as exc:
            raise FileHistoryError(file, f"malformed blame range {item!r}") from exc
        for line in range(start, end + 1):
            entries.append(
                BlameEntry(
                    file=file,
                    line=line,
                    identity=email or UNKNOWN_IDENTITY,
                    timestamp=timestamp,
                    revision=commit.get("oid"),
                    name=name,
                )
            )
    return entries


@dataclass(frozen=True)
class GitHubUser:
    """Public profile linked from the pull request summary."""

    login: str
    url: str
    avatar_url: str


class GitHubUserDirectory:
    """Finds the GitHub profile behind a commit e-mail via the user search API.

    Lookups are cached per e-mail; failures are logged and yield ``None`` so
    the summary falls back to the committer name.
    """

    def __init__(
        self,
        *,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
        cwd: str | Path = ".",
        runner: Callable[..., str] | None = None,
    ) -> None:
        self.hostname = api_hostname(api_url)
        self.cwd = Path(cwd)
        self._env = gh_environment(token, self.hostname)
        self._runner = runner or self._default_runner
        self._cache: Dict[str, Optional[GitHubUser]] = {}
        self.logger = get_logger("github")

    def lookup(self, email: str) -> Optional[GitHubUser]:
        email = email.strip()
        if "@" not in email:
            return None
        if email in self._cache:
            return self._cache[email]

        args = ["gh", "api", "-X", "GET", "search/users", "-f", f"q={email}"]
        if self.hostname:
            args[2:2] = ["--hostname", self.hostname]
        try:
            output = self._runner(args, cwd=self.cwd, env=self._env, capture_output=True)
            user = parse_user_search(output)
        except (subprocess.CalledProcessError, FileNotFoundError, ValueError) as exc:
            self.logger.warning("Failed to look up GitHub user for %s: %s", email, exc)
            user = None
        self._cache[email] = user
        return user

    def lookup_all(self, emails: Iterable[str]) -> Dict[str, GitHubUser]:
        found: Dict[str, GitHubUser] = {}
        for email in emails:
            user = self.lookup(email)
            if user is not None:
                found[email] = user
        return found

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
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
        return completed.stdout if capture_output else ""


def parse_user_search(payload: str) -> Optional[GitHubUser]:
    """Return the first user of a ``search/users`` response, if any."""
    document = json.loads(payload)
    items = document.get("items") if isinstance(document, dict) else None
    if not items:
        return None
    first = items[0]
    login = first.get("login")
    if not login:
        return None
    return GitHubUser(
        login=login,
        url=first.get("html_url") or f"https://github.com/{login}",
        avatar_url=first.get("avatar_url") or "",
    )


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _stderr(exc: subprocess.CalledProcessError) -> str:
    stderr = exc.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return (stderr or str(exc)).strip()


__all__ = [
    "BLAME_QUERY",
    "GitHubHistoryProvider",
    "GitHubUser",
    "GitHubUserDirectory",
    "api_hostname",
    "parse_graphql_blame",
    "parse_user_search",
]
