#!/usr/bin/env python3
"""Deal ingestion worker.

Subcommands:
- run       one ingestion run for a target date (default: today)
- sweep     cleanup sweep over the recent corpus only
- schedule  daemon: daily ingestion plus a periodic sweep
- status    recent runs recorded in Postgres
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import date, datetime
from typing import List, Optional

import schedule
from dotenv import load_dotenv

from dealwatch.config import Config
from dealwatch.coordinator import IngestionCoordinator
from dealwatch.dedup.engine import DuplicateResolutionEngine
from dealwatch.dedup.semantic import SemanticAdjudicator
from dealwatch.extraction.article_extractor import ArticleExtractor
from dealwatch.extraction.llm_client import OpenAIJSONModel
from dealwatch.ingestion.article_types import RunSummary
from dealwatch.reliability import ProcessLock, RateLimiter
from dealwatch.search.orchestrator import SearchOrchestrator
from dealwatch.search.perplexity import PerplexitySearchClient
from dealwatch.storage.postgres_repo import PostgresDealStore
from dealwatch.storage.postgres_schema import ensure_postgres_schema

logger = logging.getLogger("dealwatch.worker")

LOCK_FILE = os.environ.get("DEALWATCH_LOCK_FILE", "/tmp/dealwatch_ingest.lock")
LOG_FILE = os.environ.get("DEALWATCH_LOG_FILE", "dealwatch.log")


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_coordinator(config: Config) -> IngestionCoordinator:
    ensure_postgres_schema(config.pg_dsn)
    store = PostgresDealStore(config.pg_dsn)

    adjudicator = None
    extractor = None
    orchestrator = None
    if config.openai_api_key:
        model = OpenAIJSONModel(
            config.openai_api_key,
            model=config.openai_model,
            timeout=float(config.request_timeout),
            rate_limiter=RateLimiter(max_calls=config.openai_rate_limit, time_window=60),
        )
        extractor = ArticleExtractor(model)
        adjudicator = SemanticAdjudicator(
            model,
            max_calls=config.semantic_max_comparisons,
            call_delay=config.llm_delay_seconds,
        )
    else:
        logger.warning("OPENAI_API_KEY not set; semantic duplicate checks are disabled")
    if config.perplexity_api_key:
        client = PerplexitySearchClient(
            config.perplexity_api_key,
            model=config.perplexity_model,
            timeout=float(config.request_timeout),
        )
        orchestrator = SearchOrchestrator(client, delay_seconds=config.search_delay_seconds)

    return IngestionCoordinator(
        orchestrator,
        extractor,
        DuplicateResolutionEngine(adjudicator=adjudicator),
        store,
        category_hints=config.category_hints,
        persist_batch_size=config.persist_batch_size,
        sweep_window_days=config.sweep_window_days,
        sweep_max_articles=config.sweep_max_articles,
    )


def _log_summary(summary: RunSummary) -> None:
    logger.info(
        f"[{summary.kind}] status={summary.status} sections={summary.sections} candidates={summary.candidates} "
        f"saved={summary.saved} patched={summary.patched} skipped={summary.skipped} errors={summary.errors}"
    )
    if summary.sweep is not None:
        s = summary.sweep
        logger.info(
            f"[sweep] examined={s.examined} comparisons={s.comparisons} semantic_calls={s.semantic_calls} "
            f"duplicates={s.duplicates_found} deleted={s.deleted} patched={s.patched} failed={s.failed} dry_run={s.dry_run}"
        )


def run_once(config: Config, target_date: Optional[date] = None) -> RunSummary:
    coordinator = build_coordinator(config)
    summary = coordinator.run(target_date)
    _log_summary(summary)
    return summary


def run_sweep(config: Config, dry_run: bool = False) -> RunSummary:
    coordinator = build_coordinator(config)
    summary = coordinator.run_cleanup_sweep(dry_run=dry_run)
    _log_summary(summary)
    return summary


def run_scheduled(config: Config) -> None:
    coordinator = build_coordinator(config)

    def _ingest_job():
        try:
            _log_summary(coordinator.run())
        except Exception as e:
            logger.error(f"Scheduled ingestion failed: {e}", exc_info=True)

    def _sweep_job():
        _log_summary(coordinator.run_cleanup_sweep())

    schedule.every().day.at(config.schedule_time).do(_ingest_job)
    schedule.every(config.schedule_sweep_hours).hours.do(_sweep_job)
    logger.info(
        f"Scheduled daily ingestion at {config.schedule_time} and a sweep every {config.schedule_sweep_hours}h; "
        f"next run {schedule.next_run()}"
    )
    while True:
        schedule.run_pending()
        time.sleep(30)


def show_status(config: Config, limit: int = 10) -> None:
    store = PostgresDealStore(config.pg_dsn)
    runs = store.recent_runs(limit)
    if not runs:
        print("No recorded runs.")
        return
    for r in runs:
        started = r["started_at"].strftime("%Y-%m-%d %H:%M:%S") if r["started_at"] else "-"
        target = r["target_date"].isoformat() if r["target_date"] else "-"
        print(
            f"{started}  {r['kind']:<6} {r['status']:<10} date={target} saved={r['saved']} "
            f"patched={r['patched']} skipped={r['skipped']} errors={r['errors']} swept={r['sweep_deleted']}"
        )


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Private credit deal ingestion worker")
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="Run one ingestion for a target date")
    p_run.add_argument("--date", type=_parse_date, default=None, help="Target date (YYYY-MM-DD, default today)")

    p_sweep = sub.add_parser("sweep", help="Run the duplicate cleanup sweep only")
    p_sweep.add_argument("--dry-run", action="store_true", help="Report duplicates without deleting")

    sub.add_parser("schedule", help="Run as a scheduled daemon")

    p_status = sub.add_parser("status", help="Show recent runs")
    p_status.add_argument("--limit", type=int, default=10)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    setup_logging()

    try:
        config = Config.from_env(require_api_keys=args.command in ("run", "schedule"))
    except ValueError as e:
        logger.error(f"Configuration error:\n{e}")
        return 1

    if args.command == "status":
        show_status(config, args.limit)
        return 0

    process_lock = ProcessLock(LOCK_FILE)
    if not process_lock.acquire():
        logger.error("Another ingestion worker is already running. Exiting.")
        return 1
    try:
        if args.command == "run":
            summary = run_once(config, args.date)
        elif args.command == "sweep":
            summary = run_sweep(config, dry_run=args.dry_run)
        else:
            run_scheduled(config)
            return 0
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        return 0
    finally:
        process_lock.release()
    return 0 if summary.status in ("ok", "partial", "no_content") else 1


if __name__ == "__main__":
    sys.exit(main())
