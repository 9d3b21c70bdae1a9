"""Ingestion coordinator.

One run walks Idle -> Fetching -> Parsing -> Extracting -> Resolving -> Cleaning -> Idle:
search for the target date, split the blob into sections, extract candidates per
section, write the survivors, then sweep the recent corpus. Only one run (or
standalone sweep) may be in flight; a second request is rejected, never queued.

Every stored record is dated with the run's target date, whatever dates the text
itself mentions.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence

from dealwatch.dedup.engine import DuplicateResolutionEngine
from dealwatch.errors import ConfigurationError
from dealwatch.extraction import section_parser
from dealwatch.extraction.article_extractor import ArticleExtractor
from dealwatch.ingestion.article_types import (
    DEFAULT_SOURCE_NAME,
    CandidateArticle,
    RunSummary,
    SearchSection,
    StoredArticle,
    SweepReport,
)
from dealwatch.search.orchestrator import NO_CONTENT, SearchOrchestrator
from dealwatch.storage.postgres_repo import BaseDealStore

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    CLEANING = "cleaning"


# Outcomes of persisting one candidate.
SAVED = "saved"
PATCHED = "patched"
SKIPPED = "skipped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionCoordinator:
    def __init__(
        self,
        orchestrator: Optional[SearchOrchestrator],
        extractor: Optional[ArticleExtractor],
        engine: DuplicateResolutionEngine,
        store: BaseDealStore,
        *,
        category_hints: Optional[Sequence[str]] = None,
        persist_batch_size: int = 4,
        sweep_window_days: int = 7,
        sweep_max_articles: int = 200,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.orchestrator = orchestrator
        self.extractor = extractor
        self.engine = engine
        self.store = store
        self.category_hints = list(category_hints) if category_hints else None
        self.persist_batch_size = max(1, int(persist_batch_size))
        self.sweep_window_days = sweep_window_days
        self.sweep_max_articles = sweep_max_articles
        self._clock = clock

        self._guard = threading.Lock()
        self.state = RunState.IDLE
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[RunSummary] = None

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def run(self, target_date: Optional[date] = None) -> RunSummary:
        """Execute one ingestion run for `target_date` (default: today, UTC)."""
        target = target_date or self._clock().date()
        if not self._guard.acquire(blocking=False):
            logger.warning(f"Ingestion for {target.isoformat()} rejected: another run is in progress")
            return RunSummary(kind="ingest", status="rejected", target_date=target, message="run already in progress")

        summary = RunSummary(kind="ingest", target_date=target, started_at=self._clock())
        try:
            self._ingest(target, summary)
        except Exception as e:
            summary.status = "failed"
            summary.message = f"{type(e).__name__}: {e}"
            logger.error(f"Ingestion run for {target.isoformat()} failed: {e}", exc_info=True)
            raise
        finally:
            try:
                self.state = RunState.CLEANING
                summary.sweep = self._sweep_quietly(target, summary)
            finally:
                self._finish(summary)
                self._guard.release()

        logger.info(
            f"Ingestion for {target.isoformat()} finished ({summary.status}): {summary.sections} sections, "
            f"{summary.candidates} candidates, {summary.saved} saved, {summary.patched} patched, "
            f"{summary.skipped} skipped, {summary.errors} errors"
        )
        return summary

    def run_cleanup_sweep(self, dry_run: bool = False) -> RunSummary:
        """Standalone sweep, guarded by the same single-flight lock as `run`."""
        today = self._clock().date()
        if not self._guard.acquire(blocking=False):
            logger.warning("Cleanup sweep rejected: an ingestion run is in progress")
            return RunSummary(kind="sweep", status="rejected", target_date=today, message="run already in progress")

        summary = RunSummary(kind="sweep", target_date=today, started_at=self._clock())
        try:
            self.state = RunState.CLEANING
            summary.sweep = self.engine.sweep(
                self.store,
                today,
                window_days=self.sweep_window_days,
                max_articles=self.sweep_max_articles,
                dry_run=dry_run,
            )
            summary.errors = summary.sweep.failed
            summary.status = "partial" if summary.errors else "ok"
        except Exception as e:
            summary.status = "failed"
            summary.message = f"{type(e).__name__}: {e}"
            logger.error(f"Cleanup sweep failed: {e}", exc_info=True)
        finally:
            self._finish(summary)
            self._guard.release()
        return summary

    # -----------------------------
    # Run stages
    # -----------------------------
    def _ingest(self, target: date, summary: RunSummary) -> None:
        if self.orchestrator is None or self.extractor is None:
            raise ConfigurationError("ingestion needs both a search orchestrator and an extractor")
        self.state = RunState.FETCHING
        logger.info(f"Starting ingestion for {target.isoformat()}")
        raw = self.orchestrator.search(target, self.category_hints)

        self.state = RunState.PARSING
        sections = [] if raw == NO_CONTENT else section_parser.parse(raw)
        if not sections:
            summary.status = "no_content"
            summary.message = "search returned no usable content"
            logger.warning(f"No content found for {target.isoformat()}")
            return
        summary.sections = len(sections)
        logger.info(f"Parsed {len(sections)} sections")

        for section in sections:
            self.state = RunState.EXTRACTING
            candidates = self._extract_section(section, summary)
            summary.section_counts[section.category] = len(candidates)
            if not candidates:
                logger.info(f"No articles extracted for section '{section.category}'")
                continue

            self.state = RunState.RESOLVING
            self._persist_section(candidates, target, summary)

        summary.status = "partial" if summary.errors else "ok"

    def _extract_section(self, section: SearchSection, summary: RunSummary) -> List[CandidateArticle]:
        try:
            candidates = self.extractor.extract(section)
        except Exception as e:
            summary.errors += 1
            logger.error(f"Extractor failed for section '{section.category}': {e}; falling back to summary record")
            try:
                fallback = self.extractor.fallback_candidate(section)
            except Exception as fe:
                summary.errors += 1
                logger.error(f"Fallback summary failed for section '{section.category}': {fe}")
                return []
            candidates = [fallback] if fallback else []

        try:
            merged = self.engine.merge_candidates(candidates)
        except Exception as e:
            summary.errors += 1
            logger.error(f"In-batch merge failed for section '{section.category}': {e}")
            merged = list(candidates)
        summary.candidates += len(merged)
        return merged

    def _persist_section(self, candidates: List[CandidateArticle], target: date, summary: RunSummary) -> None:
        size = self.persist_batch_size
        with ThreadPoolExecutor(max_workers=size) as pool:
            for start in range(0, len(candidates), size):
                group = candidates[start:start + size]
                futures = [pool.submit(self._persist_candidate, c, target) for c in group]
                for cand, fut in zip(group, futures):
                    try:
                        outcome = fut.result()
                    except Exception as e:
                        summary.errors += 1
                        logger.error(f"Failed to persist \"{cand.title[:80]}\": {e}")
                        continue
                    if outcome == SAVED:
                        summary.saved += 1
                    elif outcome == PATCHED:
                        summary.patched += 1
                    else:
                        summary.skipped += 1

    def _persist_candidate(self, cand: CandidateArticle, target: date) -> str:
        # The duplicate read completes before this candidate's write is issued.
        existing = list(self.store.get_by_date(target))
        seen = {a.id for a in existing}
        for a in self.store.find_duplicate_candidates(cand.title, target):
            if a.id not in seen:
                existing.append(a)
                seen.add(a.id)

        match = self.engine.find_inline_match(cand, existing)
        if match is not None:
            stored, analysis = match
            if cand.source_url and not stored.source_url:
                name = stored.source_name
                if (not name or name == DEFAULT_SOURCE_NAME) and cand.source_name:
                    name = cand.source_name
                self.store.update_source_attribution(stored.id, cand.source_url, name)
                logger.info(f"Patched source for #{stored.id} from duplicate ({analysis.stage}) \"{cand.title[:60]}\"")
                return PATCHED
            logger.info(f"Skipping duplicate ({analysis.stage}) of #{stored.id}: \"{cand.title[:60]}\"")
            return SKIPPED

        saved = self.store.save(
            StoredArticle(
                id=None,
                date=target,
                title=cand.title,
                summary=cand.summary,
                content=cand.origin_section_text,
                source_name=cand.source_name or DEFAULT_SOURCE_NAME,
                source_url=cand.source_url,
                category=cand.category,
            )
        )
        logger.info(f"Saved #{saved.id}: \"{cand.title[:80]}\" for {target.isoformat()}")
        return SAVED

    def _sweep_quietly(self, target: date, summary: RunSummary) -> Optional[SweepReport]:
        try:
            return self.engine.sweep(
                self.store,
                target,
                window_days=self.sweep_window_days,
                max_articles=self.sweep_max_articles,
            )
        except Exception as e:
            summary.errors += 1
            logger.error(f"Post-run cleanup sweep failed: {e}", exc_info=True)
            return None

    def _finish(self, summary: RunSummary) -> None:
        summary.finished_at = self._clock()
        if summary.status == "ok" and summary.errors:
            summary.status = "partial"
        self.state = RunState.IDLE
        self.last_run_at = summary.finished_at
        self.last_summary = summary
        try:
            self.store.record_run(summary)
        except Exception as e:
            logger.warning(f"Could not record run summary: {e}")
