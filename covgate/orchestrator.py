"""Pipeline orchestration for coverage gating runs."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .analysis import AttributionAggregator
from .config import CovGateConfig, load_config
from .coverage import CoverageIndexBuilder, CoverageLoader
from .errors import ConfigError
from .gating import GateEngine
from .git.blame import BlameResolver
from .git.github import GitHubHistoryProvider, GitHubUserDirectory
from .git.history import GitHistoryProvider, HistoryProvider
from .git.publisher import CommentPublisher, parse_pr_number
from .logging import get_logger, log_stage
from .models import CoverageFragment, GateResult
from .report import render_markdown

PR_COMMENT_FOOTER = "_Generated by covgate._"


@dataclass
class CheckOutcome:
    """Result of a coverage gating run."""

    result: GateResult
    config: CovGateConfig
    coverage_files: List[Path]


def _default_history(config: CovGateConfig) -> HistoryProvider:
    provider: GitHistoryProvider
    if config.blame.source == "github":
        github = config.github
        if not github.repository:
            raise ConfigError(
                "Blame source 'github' needs GITHUB_REPOSITORY (owner/name) to be set"
            )
        provider = GitHubHistoryProvider(
            config.root,
            github.repository,
            api_url=github.api_url,
            token=github.token,
        )
    else:
        provider = GitHistoryProvider(config.root)
    provider.verify()
    return provider


class Orchestrator:
    """Coordinates coverage loading, blame resolution, aggregation and gating."""

    def __init__(
        self,
        loader: CoverageLoader | None = None,
        index_builder: CoverageIndexBuilder | None = None,
        history_factory: Callable[[CovGateConfig], HistoryProvider] | None = None,
        aggregator: AttributionAggregator | None = None,
        publisher: CommentPublisher | None = None,
        user_directory: GitHubUserDirectory | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.loader = loader or CoverageLoader()
        self.index_builder = index_builder or CoverageIndexBuilder()
        self.history_factory = history_factory or _default_history
        self.aggregator = aggregator or AttributionAggregator()
        self.publisher = publisher or CommentPublisher()
        self.user_directory = user_directory
        self.env = env
        self.logger = get_logger("orchestrator")

    def run_check(
        self,
        path: str,
        *,
        cancel_event: Optional[threading.Event] = None,
        **overrides: Any,
    ) -> CheckOutcome:
        """Gate the repository at ``path``; keyword overrides win over loaded config."""
        repo_path = Path(path).expanduser().resolve()
        if not repo_path.exists():
            raise FileNotFoundError(f"Repository path does not exist: {repo_path}")
        self.logger.info("Starting coverage check for %s", repo_path)

        config = load_config(repo_path, env=self.env)
        if overrides:
            config = config.with_overrides(**overrides)

        provider = self.history_factory(config)
        # Report paths are relative to the check directory, blame paths to the top level.
        top_level = provider.repo if provider.repo is not None else config.root
        if Path(top_level).resolve() != config.root:
            self.logger.info("Mapping coverage paths from %s onto %s", config.root, top_level)

        coverage_files = config.coverage_paths()
        with log_stage(self.logger, "Loading coverage"):
            fragments = self.loader.load(
                coverage_files,
                root=Path(top_level),
                base=config.root,
                fmt=config.coverage.format,
            )
        result = self.evaluate(config, fragments, provider, cancel_event=cancel_event)
        return CheckOutcome(result=result, config=config, coverage_files=coverage_files)

    def evaluate(
        self,
        config: CovGateConfig,
        fragments: Sequence[CoverageFragment],
        provider: HistoryProvider,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> GateResult:
        """Run the attribution engine over already-loaded coverage fragments."""
        gating = config.gating
        engine = GateEngine(
            gating.min_threshold, enforce_per_committer=gating.enforce_per_committer
        )

        index = self.index_builder.build(fragments)
        for rejected in index.rejected:
            self.logger.warning("%s", rejected)
        self.logger.info(
            "Coverage index holds %d lines across %d files", len(index), len(index.files())
        )

        resolver = BlameResolver(
            provider,
            workers=config.blame.workers,
            timeout=config.blame.timeout,
            cancel_event=cancel_event,
        )
        with log_stage(self.logger, "Resolving blame"):
            blame = resolver.resolve(index, gating)
        attribution = self.aggregator.aggregate(index, blame)
        return engine.evaluate(
            attribution,
            rejected_fragments=[str(item) for item in index.rejected],
            degraded_files=blame.degraded_files,
        )

    def publish(self, outcome: CheckOutcome) -> bool:
        """Post the Markdown summary to the pull request the run belongs to."""
        config = outcome.config
        github = config.github
        if not github.is_pull_request:
            self.logger.info(
                "Event %s is not a pull request; skipping comment", github.event_name or "<none>"
            )
            return False
        pr_number = parse_pr_number(github.ref_name) or parse_pr_number(github.ref)
        if pr_number is None:
            self.logger.warning(
                "Failed to parse pull request number from ref %s", github.ref_name or github.ref
            )
            return False

        users = None
        if config.report.link_users:
            directory = self.user_directory or GitHubUserDirectory(
                api_url=github.api_url, token=github.token, cwd=config.root
            )
            users = directory.lookup_all(
                stats.identity for stats in outcome.result.per_committer
            )
        body = render_markdown(outcome.result, footer=PR_COMMENT_FOOTER, users=users)
        return self.publisher.post_pr_comment(
            str(config.root), pr_number, body, token=github.token
        )


__all__ = ["CheckOutcome", "Orchestrator"]
