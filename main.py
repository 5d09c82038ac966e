"""CLI entry point for the locum matching engine."""

import argparse
import asyncio
import json
import logging
import sqlite3
import sys
from pathlib import Path

from locum_match.core.config import ReportConfig, Settings
from locum_match.core.db import init_db
from locum_match.core.errors import JobNotFoundError, MatchingError
from locum_match.persistence.sqlite import (
    SqliteMatchRunRepository,
    SqliteMatchRunResultRepository,
    SqliteOutboxRepository,
)
from locum_match.pipeline.orchestrator import MatchOrchestrator, is_active_job
from locum_match.pipeline.search import build_criteria, search_physicians
from locum_match.reporting.report import generate_matching_report
from locum_match.sources.file import FileDataSource


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--data",
        required=True,
        help="Path to the clean dataset (JSON or YAML with physicians/jobs/reservations)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Locum matching engine - rank physicians against job openings",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- short-term subcommand ---
    short_parser = subparsers.add_parser(
        "short-term",
        help="Run immediate matching for one short-term job",
    )
    short_parser.add_argument("--job-id", required=True, help="Job to match")
    _add_common(short_parser)

    # --- weekly-digest subcommand ---
    digest_parser = subparsers.add_parser(
        "weekly-digest",
        help="Run the weekly digest across all active jobs",
    )
    _add_common(digest_parser)

    # --- search subcommand ---
    search_parser = subparsers.add_parser(
        "search",
        help="Rank physicians for one job without recording a run",
    )
    search_parser.add_argument("--job-id", required=True, help="Job to match")
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )
    _add_common(search_parser)

    # --- report subcommand ---
    report_parser = subparsers.add_parser(
        "report",
        help="Render a matching report for review",
    )
    report_parser.add_argument(
        "--job-id",
        action="append",
        dest="job_ids",
        help="Job to include (repeatable, default: all active jobs)",
    )
    report_parser.add_argument(
        "--format",
        choices=["csv", "json"],
        default=None,
        help="Output format (default: report.format from settings)",
    )
    report_parser.add_argument("--top-k", type=int, default=None, help="Rows per job")
    report_parser.add_argument(
        "--output",
        default=None,
        help="Write the report here instead of stdout",
    )
    _add_common(report_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    if path is None:
        return Settings()
    return Settings.from_yaml(path)


def build_orchestrator(
    settings: Settings,
    source: FileDataSource,
    conn: sqlite3.Connection,
) -> MatchOrchestrator:
    return MatchOrchestrator(
        settings,
        source,
        SqliteMatchRunRepository(conn),
        SqliteMatchRunResultRepository(conn),
        SqliteOutboxRepository(conn),
    )


async def cmd_short_term(args: argparse.Namespace, settings: Settings) -> None:
    """Handle short-term subcommand."""
    source = FileDataSource.from_file(args.data)
    conn = init_db(settings.database.path)
    try:
        run_id = await build_orchestrator(settings, source, conn).run_for_job(args.job_id)
    finally:
        conn.close()
    print(f"Short-term run {run_id} completed for job {args.job_id}")


async def cmd_weekly_digest(args: argparse.Namespace, settings: Settings) -> None:
    """Handle weekly-digest subcommand."""
    source = FileDataSource.from_file(args.data)
    conn = init_db(settings.database.path)
    try:
        run_id = await build_orchestrator(settings, source, conn).run_weekly()
    finally:
        conn.close()
    print(f"Weekly digest run {run_id} completed")


async def cmd_search(args: argparse.Namespace, settings: Settings) -> None:
    """Handle search subcommand."""
    source = FileDataSource.from_file(args.data)
    job = await source.get_job(args.job_id)
    if job is None:
        msg = f"Job {args.job_id} not found"
        raise JobNotFoundError(msg)

    criteria = build_criteria(job, settings)
    results = search_physicians(
        criteria,
        await source.list_physicians(),
        settings,
        await source.list_reservations() if settings.eligibility.check_conflicts else [],
    )

    if args.export == "json":
        print(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
        return

    print(f"{len(results)} physicians matched job {job.id} ({job.post_title})")
    for rank, r in enumerate(results, start=1):
        parts = ", ".join(f"{k}={v:.2f}" for k, v in r.breakdown.items())
        print(f"  {rank:>3}. {r.physician_id}: {r.score:.3f} [{parts}]")


async def cmd_report(args: argparse.Namespace, settings: Settings) -> None:
    """Handle report subcommand."""
    source = FileDataSource.from_file(args.data)
    if args.job_ids:
        jobs = []
        for job_id in args.job_ids:
            job = await source.get_job(job_id)
            if job is None:
                msg = f"Job {job_id} not found"
                raise JobNotFoundError(msg)
            jobs.append(job)
    else:
        jobs = [j for j in await source.list_jobs() if is_active_job(j, settings.digest)]

    physicians = await source.list_physicians()
    reservations = (
        await source.list_reservations() if settings.eligibility.check_conflicts else []
    )
    sections = []
    for job in jobs:
        criteria = build_criteria(job, settings)
        sections.append((criteria, search_physicians(criteria, physicians, settings, reservations)))

    overrides: dict[str, object] = {}
    if args.format:
        overrides["format"] = args.format
    if args.top_k is not None:
        overrides["top_k"] = args.top_k
    options = ReportConfig.model_validate({**settings.report.model_dump(), **overrides})

    report = generate_matching_report(sections, options)
    if args.output:
        path = Path(args.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.content)
        print(f"Report written to {path} ({len(report.sections)} jobs)")
    else:
        print(report.content)


_COMMANDS = {
    "short-term": cmd_short_term,
    "weekly-digest": cmd_weekly_digest,
    "search": cmd_search,
    "report": cmd_report,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_COMMANDS[args.command](args, settings))
    except (FileNotFoundError, ValueError, MatchingError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
