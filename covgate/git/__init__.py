"""Version-control collaborators: history, diffs, blame resolution and publishing."""

from .blame import BlameResolver
from .diff import DiffAnalyzer, DiffResult
from .github import GitHubHistoryProvider, GitHubUser, GitHubUserDirectory
from .history import GitHistoryProvider, HistoryProvider
from .publisher import CommentPublisher, parse_pr_number

__all__ = [
    "BlameResolver",
    "CommentPublisher",
    "DiffAnalyzer",
    "DiffResult",
    "GitHistoryProvider",
    "GitHubHistoryProvider",
    "GitHubUser",
    "GitHubUserDirectory",
    "HistoryProvider",
    "parse_pr_number",
]
