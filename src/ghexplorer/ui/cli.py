# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from dotenv import load_dotenv

from ghexplorer.adapters.sqlalchemy.migrations import current_revision
from ghexplorer.adapters.sqlalchemy.unit_of_work import configured_engine, startup
from ghexplorer.app import (
    build_scheduler,
    compute_rankings,
    fetch_closed_pull_requests,
    ingest_payloads,
    latest_rankings,
    list_pipelines,
    most_collaborative_merge_request,
    pipeline_history,
    pipeline_status,
    rankings_at,
    resume_run,
    run_due_schedules,
    set_schedule,
)
from ghexplorer.config import configure_logging
from ghexplorer.domain.pipeline import PipelineError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from types import FrameType

    from ghexplorer.domain.model import ContributorRanking, PipelineRun
    from ghexplorer.domain.pipeline import RunSummary
    from ghexplorer.domain.scheduling import Scheduler

log = logging.getLogger(__name__)

# overrides accepted by ``run`` and ``resume``; mapped onto StageConfig fields
_STAGE_OPTIONS = ("batch_size", "retry_count", "retry_delay", "max_concurrency")


def _add_stage_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--batch-size", type=int, help="Items per batch")
    parser.add_argument("--retry-count", type=int, help="Retries per failed batch")
    parser.add_argument("--retry-delay", type=float, help="Base backoff delay in seconds")
    parser.add_argument("--max-concurrency", type=int, help="Batches processed in parallel")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="GitHub entity pipeline and contributor ranking")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at debug level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("migrate", help="Upgrade the database schema to the latest revision")

    ingest = subparsers.add_parser("ingest", help="Store raw JSON payloads in staging")
    ingest.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="JSON files holding one payload, a list of payloads or JSON lines",
    )

    fetch = subparsers.add_parser("fetch", help="Stage closed pull requests from GitHub")
    fetch.add_argument("repository", help="Repository full name, e.g. octocat/hello-world")
    fetch.add_argument(
        "--max-pages",
        type=int,
        default=1,
        help="Pages of closed pull requests to request (default: %(default)s)",
    )

    subparsers.add_parser("pipelines", help="List registered pipelines")

    run = subparsers.add_parser("run", help="Run a pipeline to completion")
    run.add_argument("pipeline", help="Registered pipeline name")
    run.add_argument(
        "--reset-stale",
        action="store_true",
        help="Fail runs left in 'running' by a crashed process before starting",
    )
    _add_stage_options(run)

    resume = subparsers.add_parser("resume", help="Resume a failed or stopped run")
    resume.add_argument("run_id", type=str, help="Id of the run to resume")
    _add_stage_options(resume)

    stop = subparsers.add_parser("stop", help="Request the active run of a pipeline to stop")
    stop.add_argument("pipeline", help="Registered pipeline name")

    status = subparsers.add_parser("status", help="Show pipeline status")
    status.add_argument("pipeline", help="Registered pipeline name")

    history = subparsers.add_parser("history", help="List recent pipeline runs")
    history.add_argument("pipeline", nargs="?", help="Only runs of this pipeline")
    history.add_argument("--limit", type=int, default=20, help="Maximum runs to list")

    schedule = subparsers.add_parser("schedule", help="Interval schedules")
    schedule_sub = schedule.add_subparsers(dest="schedule_command", required=True)
    schedule_set = schedule_sub.add_parser("set", help="Create or update a schedule")
    schedule_set.add_argument("pipeline", help="Registered pipeline name")
    schedule_set.add_argument("--interval", type=int, required=True, help="Seconds between runs")
    schedule_set.add_argument(
        "--inactive", action="store_true", help="Store the schedule without activating it"
    )
    schedule_sub.add_parser("run-due", help="Start every schedule that is due now")

    rankings = subparsers.add_parser("rankings", help="Contributor rankings")
    rankings_sub = rankings.add_subparsers(dest="rankings_command", required=True)
    rankings_sub.add_parser("compute", help="Compute a new ranking snapshot")
    rankings_latest = rankings_sub.add_parser("latest", help="Show a ranking snapshot")
    rankings_latest.add_argument("--limit", type=int, default=20, help="Rows to show")
    rankings_latest.add_argument(
        "--at", type=str, help="ISO-8601 timestamp of a stored snapshot (default: latest)"
    )
    rankings_latest.add_argument(
        "--collaboration",
        action="store_true",
        help="Include each contributor's most collaborative merge request",
    )

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _stage_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {
        name: getattr(args, name) for name in _STAGE_OPTIONS if getattr(args, name) is not None
    }
    for name in ("batch_size", "max_concurrency"):
        if name in overrides and overrides[name] < 1:
            raise ValueError(f"--{name.replace('_', '-')} must be >= 1")
    for name in ("retry_count", "retry_delay"):
        if name in overrides and overrides[name] < 0:
            raise ValueError(f"--{name.replace('_', '-')} must be >= 0")
    return overrides


def _validate(args: argparse.Namespace) -> None:
    if args.command in {"run", "resume"}:
        _stage_overrides(args)
    if args.command == "resume":
        _parse_uuid(args.run_id)
    if args.command == "fetch" and args.max_pages < 1:
        raise ValueError("--max-pages must be >= 1")
    if args.command == "fetch" and "/" not in args.repository:
        raise ValueError(f"Repository must be 'owner/name', got {args.repository!r}")
    if args.command == "schedule" and args.schedule_command == "set" and args.interval < 1:
        raise ValueError("--interval must be >= 1")
    if args.command == "rankings" and args.rankings_command == "latest" and args.at:
        _parse_iso_datetime(args.at)
    if args.command == "ingest":
        for path in args.paths:
            if not path.is_file():
                raise ValueError(f"Not a file: {path}")


def read_payloads(path: Path) -> Iterator[dict[str, Any]]:
    """Yield payload objects from a JSON document or a JSON lines file."""

    text = path.read_text(encoding="utf-8")
    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{number}: invalid JSON ({exc.msg})") from exc
            if isinstance(item, dict):
                yield item
        return
    items = document if isinstance(document, list) else [document]
    yield from (item for item in items if isinstance(item, dict))


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run_row(run: PipelineRun) -> dict[str, Any]:
    return {
        "run_id": str(run.id),
        "pipeline_name": run.pipeline_name,
        "status": run.status.value,
        "started_at": run.started_at.isoformat(),
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "items_processed": run.items_processed,
        "error_message": run.error_message,
        "resumed_from": run.resumed_from,
    }


def _ranking_row(row: ContributorRanking) -> dict[str, Any]:
    return {
        "rank": row.rank_position,
        "github_id": row.contributor_github_id,
        "total_score": row.total_score,
        "commits": row.raw_commits_count,
        "lines_added": row.raw_lines_added,
        "lines_removed": row.raw_lines_removed,
        "repositories": row.repositories_contributed,
        "followers": row.followers_count,
    }


def _report(summary: RunSummary) -> int:
    _print_json(summary.to_dict())
    return 0


def _install_stop_handler(scheduler: Scheduler, pipeline: str) -> None:
    def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
        """Ask the running pipeline to stop at its next batch boundary."""
        log.info("Stop requested by user (Ctrl+C); finishing current batch")
        scheduler.stop(pipeline)

    signal(SIGINT, sigint_handler)


def _dispatch(args: argparse.Namespace) -> int:  # noqa: C901, PLR0911, PLR0912
    if args.command == "migrate":
        startup()
        engine = configured_engine()
        log.info("Database at revision %s", current_revision(engine) if engine else None)
        return 0

    if args.command == "ingest":
        stored = 0
        for path in args.paths:
            stored += ingest_payloads(read_payloads(path))
        log.info("Staged %s payloads from %s files", stored, len(args.paths))
        return 0

    if args.command == "fetch":
        stored = fetch_closed_pull_requests(args.repository, max_pages=args.max_pages)
        log.info("Staged %s closed pull requests of %s", stored, args.repository)
        return 0

    if args.command == "pipelines":
        _print_json(
            [
                {
                    "name": definition.name,
                    "stages": list(definition.stage_names),
                    "description": definition.description,
                }
                for definition in list_pipelines()
            ]
        )
        return 0

    if args.command == "run":
        scheduler = build_scheduler()
        if args.reset_stale:
            scheduler.reset_stale()
        _install_stop_handler(scheduler, args.pipeline)
        return _report(scheduler.start(args.pipeline, _stage_overrides(args)))

    if args.command == "resume":
        scheduler = build_scheduler()
        return _report(
            resume_run(_parse_uuid(args.run_id), _stage_overrides(args), scheduler=scheduler)
        )

    if args.command == "stop":
        scheduler = build_scheduler()
        if not scheduler.stop(args.pipeline):
            log.info("Pipeline %s is not running", args.pipeline)
        return 0

    if args.command == "status":
        _print_json(pipeline_status(args.pipeline).to_dict())
        return 0

    if args.command == "history":
        _print_json([_run_row(run) for run in pipeline_history(args.pipeline, limit=args.limit)])
        return 0

    if args.command == "schedule":
        if args.schedule_command == "set":
            schedule = set_schedule(args.pipeline, args.interval, active=not args.inactive)
            log.info(
                "Schedule %s: every %ss, next run %s",
                schedule.pipeline_name,
                schedule.interval_seconds,
                schedule.next_run_at or "on next run-due",
            )
            return 0
        summaries = run_due_schedules()
        _print_json([summary.to_dict() for summary in summaries])
        return 0

    if args.command == "rankings":
        if args.rankings_command == "compute":
            rows = compute_rankings()
            log.info("Ranked %s contributors", len(rows))
            return 0
        if args.at:
            rows = rankings_at(_parse_iso_datetime(args.at), limit=args.limit)
        else:
            rows = latest_rankings(args.limit)
        output = []
        for row in rows:
            entry = _ranking_row(row)
            if args.collaboration:
                highlight = most_collaborative_merge_request(row.contributor_id)
                entry["most_collaborative_merge_request"] = (
                    None
                    if highlight is None
                    else {
                        "github_id": highlight.github_id,
                        "repository": highlight.repository_full_name,
                        "title": highlight.title,
                        "collaborators": highlight.collaborators,
                    }
                )
            output.append(entry)
        _print_json(output)
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        exit_code = _dispatch(parsed_args)
    except ValueError:
        log.exception("Invalid request")
        sys.exit(2)
    except PipelineError:
        log.exception("Pipeline error")
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
