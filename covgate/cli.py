"""CLI entrypoints for covgate commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import BLAME_SOURCES, REPORT_FORMATS
from .coverage import CoverageLoader
from .errors import ConfigError, CoverageReportError, CovGateError, HistoryUnavailable, InvalidThreshold
from .logging import configure_logging
from .orchestrator import Orchestrator
from .report import render

EXIT_FAILED = 1
EXIT_ERROR = 2


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="covgate",
        description="Gate changes on per-committer test coverage.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check",
        help="Attribute coverage to committers and apply the minimum threshold.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    check_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )
    check_parser.add_argument(
        "--coverage",
        dest="coverage_files",
        action="append",
        metavar="FILE",
        help="Coverage report to read; repeat for merged reports (default: coverage.xml).",
    )
    check_parser.add_argument(
        "--format",
        dest="coverage_format",
        choices=CoverageLoader.formats(),
        help="Coverage report format (auto-detected when omitted).",
    )
    check_parser.add_argument(
        "--min-threshold",
        type=int,
        help="Minimum coverage percentage between 0 and 100.",
    )
    check_parser.add_argument(
        "--base-branch",
        help="Only attribute lines changed since the merge-base with this branch.",
    )
    check_parser.add_argument(
        "--from",
        dest="from_timestamp",
        metavar="TIMESTAMP",
        help="Only attribute lines last changed at or after this ISO-8601 timestamp.",
    )
    check_parser.add_argument(
        "--to",
        dest="to_timestamp",
        metavar="TIMESTAMP",
        help="Only attribute lines last changed at or before this ISO-8601 timestamp.",
    )
    check_parser.add_argument(
        "--enforce-per-committer",
        action="store_true",
        default=None,
        help="Fail when any single committer falls below the threshold.",
    )
    check_parser.add_argument(
        "--workers",
        type=int,
        help="Number of parallel blame workers.",
    )
    check_parser.add_argument(
        "--timeout",
        type=float,
        help="Abort blame resolution after this many seconds.",
    )
    check_parser.add_argument(
        "--blame-source",
        choices=BLAME_SOURCES,
        help="Read blame from the local clone (git) or the GitHub GraphQL API (github).",
    )
    check_parser.add_argument(
        "--output",
        dest="report_format",
        choices=REPORT_FORMATS,
        help="Report format printed to stdout (default: text).",
    )
    check_parser.add_argument(
        "--comment-pr",
        dest="comment_on_pr",
        action="store_true",
        default=None,
        help="Post the Markdown summary to the current pull request via the GitHub CLI.",
    )
    check_parser.add_argument(
        "--no-user-links",
        dest="link_users",
        action="store_false",
        default=None,
        help="Do not look up GitHub profiles for committers in the pull request comment.",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service exposing coverage checks.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for covgate commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
        return

    if args.command != "check":  # pragma: no cover - argparse enforces choices
        parser.exit(EXIT_ERROR, "Unknown command\n")

    orchestrator = Orchestrator()
    overrides = {
        key: getattr(args, key)
        for key in (
            "coverage_files",
            "coverage_format",
            "min_threshold",
            "base_branch",
            "from_timestamp",
            "to_timestamp",
            "enforce_per_committer",
            "workers",
            "timeout",
            "blame_source",
            "report_format",
            "comment_on_pr",
            "link_users",
        )
        if getattr(args, key) is not None
    }

    try:
        outcome = orchestrator.run_check(args.path, **overrides)
    except InvalidThreshold as exc:
        parser.exit(EXIT_ERROR, f"covgate check failed: InvalidThreshold: {exc}\n")
    except ConfigError as exc:
        parser.exit(EXIT_ERROR, f"covgate check failed: ConfigError: {exc}\n")
    except HistoryUnavailable as exc:
        parser.exit(EXIT_ERROR, f"covgate check failed: HistoryUnavailable: {exc}\n")
    except CoverageReportError as exc:
        parser.exit(EXIT_ERROR, f"covgate check failed: CoverageReportError: {exc}\n")
    except FileNotFoundError as exc:
        parser.exit(EXIT_ERROR, f"{exc}\n")
    except CovGateError as exc:
        parser.exit(
            EXIT_ERROR,
            f"covgate check failed: {type(exc).__name__}: {exc}\nRun with --verbose for more details.\n",
        )

    report_config = outcome.config.report
    print(render(outcome.result, report_config.format))

    if report_config.comment_on_pr:
        orchestrator.publish(outcome)

    if not outcome.result.passed:
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main(sys.argv[1:])
