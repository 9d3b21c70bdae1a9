"""Duplicate resolution: a four-stage cascade plus survivor selection.

Stages run cheap to expensive and stop at the first positive:

1. exact     canonical URL or normalized title equality
2. lexical   Jaccard over title words, threshold depends on whether sources match
3. entity    overlap of amounts / organisations / fund names, gated on deal vocabulary
4. semantic  one budgeted LLM verdict, only for borderline pairs and only in the sweep

The same engine (and the same thresholds) serves the write-time check, the
intra-batch merge and the periodic sweep.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from dealwatch.dedup.semantic import SemanticAdjudicator
from dealwatch.dedup.similarity import (
    entity_overlap,
    extract_entities,
    normalize_title,
    title_similarity,
)
from dealwatch.dedup.thresholds import DEFAULT_THRESHOLDS, DedupThresholds
from dealwatch.errors import DuplicateAnalysisError
from dealwatch.extraction.article_extractor import inherit_attribution, merge_near_identical
from dealwatch.ingestion.article_types import (
    DEFAULT_SOURCE_NAME,
    CandidateArticle,
    DuplicatePairAnalysis,
    StoredArticle,
    SweepReport,
)
from dealwatch.ingestion.deal_terms import has_deal_terms
from dealwatch.ingestion.url_utils import canonicalize_url, domain_of
from dealwatch.scoring.article_scoring import pick_survivor

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_generic_source(name: Optional[str]) -> bool:
    n = (name or "").strip().lower()
    return not n or n == DEFAULT_SOURCE_NAME.lower()


def same_source(first: Any, second: Any) -> bool:
    """Both records come from the same named outlet or the same URL domain."""
    a_name = (first.source_name or "").strip().lower()
    b_name = (second.source_name or "").strip().lower()
    if a_name and a_name == b_name and not _is_generic_source(a_name):
        return True
    a_dom = domain_of(first.source_url)
    return bool(a_dom) and a_dom == domain_of(second.source_url)


class DuplicateResolutionEngine:
    def __init__(
        self,
        thresholds: DedupThresholds = DEFAULT_THRESHOLDS,
        adjudicator: Optional[SemanticAdjudicator] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.thresholds = thresholds
        self.adjudicator = adjudicator
        self._clock = clock
        # Record ids seen by the previous sweep; the semantic budget only refills when new ones appear.
        self._swept_ids: Set[Any] = set()

    # -----------------------------
    # Pair comparison
    # -----------------------------
    def compare(
        self,
        first: Any,
        second: Any,
        *,
        allow_semantic: bool = False,
        now: Optional[datetime] = None,
    ) -> DuplicatePairAnalysis:
        """Analyse one pair; a failed comparison is reported as not duplicate."""
        analysis, _ = self._compare_guarded(first, second, allow_semantic, now or self._clock())
        return analysis

    def _compare_guarded(
        self, first: Any, second: Any, allow_semantic: bool, now: datetime
    ) -> Tuple[DuplicatePairAnalysis, bool]:
        try:
            return self._cascade(first, second, allow_semantic, now), False
        except Exception as e:
            error = e if isinstance(e, DuplicateAnalysisError) else DuplicateAnalysisError(f"{type(e).__name__}: {e}")
            logger.warning(
                f"Duplicate analysis failed for \"{first.title[:60]}\" vs \"{second.title[:60]}\": {error}"
            )
            return (
                DuplicatePairAnalysis(
                    is_duplicate=False,
                    similarity=0.0,
                    confidence="low",
                    stage="none",
                    action="keep_both",
                    reason=f"analysis failed: {error}",
                ),
                True,
            )

    def _cascade(self, first: Any, second: Any, allow_semantic: bool, now: datetime) -> DuplicatePairAnalysis:
        t = self.thresholds

        # Stage 1: exact
        url_a = canonicalize_url(first.source_url)
        url_b = canonicalize_url(second.source_url)
        if len(url_a) > t.min_url_length and url_a == url_b:
            return self._duplicate(first, second, "exact", 1.0, "high", "same canonical URL", now)
        title_a = normalize_title(first.title)
        if title_a and title_a == normalize_title(second.title):
            return self._duplicate(first, second, "exact", 1.0, "high", "same normalized title", now)

        # Stage 2: lexical
        lexical = title_similarity(first.title, second.title)
        matched_source = same_source(first, second)
        lexical_threshold = t.lexical_same_source if matched_source else t.lexical_cross_source
        if lexical >= lexical_threshold:
            confidence = "high" if lexical >= t.lexical_cross_source else "medium"
            return self._duplicate(
                first, second, "lexical", lexical, confidence, f"title similarity {lexical:.2f}", now
            )

        # Stage 3: entity
        ents_a = extract_entities(first.title, first.summary)
        ents_b = extract_entities(second.title, second.summary)
        overlap = entity_overlap(ents_a, ents_b)
        if (
            overlap > t.entity_overlap
            and has_deal_terms(f"{first.title} {first.summary}")
            and has_deal_terms(f"{second.title} {second.summary}")
        ):
            shared = ", ".join(sorted(e.replace("org:", "") for e in ents_a & ents_b))
            return self._duplicate(
                first, second, "entity", overlap, "medium", f"shared entities: {shared}", now
            )

        # Stage 4: semantic, borderline pairs only
        if allow_semantic and self.adjudicator is not None and self._is_borderline(first, second, lexical, matched_source):
            verdict = self.adjudicator.adjudicate(first, second)
            if verdict is not None and verdict.is_duplicate and verdict.similarity >= t.semantic_min_similarity:
                return self._duplicate(
                    first, second, "semantic", verdict.similarity, verdict.confidence, verdict.reason, now
                )

        return DuplicatePairAnalysis(
            is_duplicate=False,
            similarity=max(lexical, overlap),
            confidence="low",
            stage="none",
            action="keep_both",
            reason="no stage matched",
        )

    def _is_borderline(self, first: Any, second: Any, lexical: float, matched_source: bool) -> bool:
        t = self.thresholds
        if lexical >= t.lexical_borderline:
            return True
        if matched_source:
            return True
        day_a = getattr(first, "date", None)
        day_b = getattr(second, "date", None)
        if day_a and day_b:
            return abs((day_a - day_b).days) * 24 <= t.semantic_window_hours
        return False

    def _duplicate(
        self,
        first: Any,
        second: Any,
        stage: str,
        similarity: float,
        confidence: str,
        reason: str,
        now: datetime,
    ) -> DuplicatePairAnalysis:
        keep_index, _, _ = pick_survivor(first, second, now)
        winner, loser = (first, second) if keep_index == 0 else (second, first)
        if loser.source_url and not winner.source_url:
            action = "merge"
        else:
            action = "keep_first" if keep_index == 0 else "keep_second"
        return DuplicatePairAnalysis(
            is_duplicate=True,
            similarity=round(float(similarity), 4),
            confidence=confidence,
            stage=stage,
            action=action,
            reason=reason,
            keep_index=keep_index,
        )

    # -----------------------------
    # Write-time paths
    # -----------------------------
    def find_inline_match(
        self, candidate: CandidateArticle, existing: Sequence[StoredArticle]
    ) -> Optional[Tuple[StoredArticle, DuplicatePairAnalysis]]:
        """First stored record the candidate duplicates (stages 1-3), if any."""
        now = self._clock()
        for stored in existing:
            analysis = self.compare(candidate, stored, allow_semantic=False, now=now)
            if analysis.is_duplicate:
                return stored, analysis
        return None

    def merge_candidates(self, candidates: Sequence[CandidateArticle]) -> List[CandidateArticle]:
        """Collapse duplicates inside one extraction batch before anything is written."""
        now = self._clock()
        survivors: List[CandidateArticle] = []
        for cand in merge_near_identical(list(candidates)):
            for i, kept in enumerate(survivors):
                analysis = self.compare(kept, cand, allow_semantic=False, now=now)
                if analysis.is_duplicate:
                    winner, loser = (kept, cand) if analysis.keep_index == 0 else (cand, kept)
                    survivors[i] = inherit_attribution(winner, loser)
                    logger.info(f"Merged in-batch duplicate ({analysis.stage}): \"{loser.title[:80]}\"")
                    break
            else:
                survivors.append(cand)
        return survivors

    # -----------------------------
    # Cleanup sweep
    # -----------------------------
    def sweep(
        self,
        store: Any,
        today: date,
        *,
        window_days: int = 7,
        max_articles: int = 200,
        dry_run: bool = False,
    ) -> SweepReport:
        """Stored-vs-stored dedup over the trailing window, all four stages.

        Records are compared greedily, newest first. A deleted record takes no further
        part in the pass. In `dry_run` mode nothing is written; `pairs` lists what
        would have happened.

        The semantic budget is refilled only when the window holds records the previous
        sweep did not see. Judged pairs are answered from the adjudicator's cache, so a
        second sweep with no ingestion in between makes no new calls and deletes nothing.
        """
        report = SweepReport(dry_run=dry_run)

        since = today - timedelta(days=window_days)
        articles: List[StoredArticle] = list(store.get_since(since, limit=max_articles))
        report.examined = len(articles)

        calls_before = 0
        if self.adjudicator is not None:
            ids = {a.id for a in articles}
            if not ids <= self._swept_ids:
                self.adjudicator.reset_budget()
            self._swept_ids = ids
            calls_before = self.adjudicator.calls_made
        logger.info(f"Cleanup sweep over {len(articles)} articles since {since.isoformat()} (dry_run={dry_run})")

        now = self._clock()
        removed: Set[Any] = set()
        for i in range(len(articles)):
            if articles[i].id in removed:
                continue
            for j in range(i + 1, len(articles)):
                first, second = articles[i], articles[j]
                if second.id in removed:
                    continue
                report.comparisons += 1
                analysis, failed = self._compare_guarded(first, second, True, now)
                if failed:
                    report.failed += 1
                if not analysis.is_duplicate:
                    continue

                report.duplicates_found += 1
                win_idx, lose_idx = (i, j) if analysis.keep_index == 0 else (j, i)
                winner, loser = articles[win_idx], articles[lose_idx]
                report.pairs.append(
                    {
                        "kept_id": winner.id,
                        "removed_id": loser.id,
                        "stage": analysis.stage,
                        "similarity": analysis.similarity,
                        "action": analysis.action,
                        "reason": analysis.reason,
                    }
                )
                logger.info(
                    f"Duplicate ({analysis.stage}, {analysis.similarity:.2f}): keeping #{winner.id} "
                    f"\"{winner.title[:60]}\", removing #{loser.id} \"{loser.title[:60]}\""
                )

                if not dry_run:
                    try:
                        if analysis.action == "merge":
                            patched = inherit_attribution(winner, loser)
                            store.update_source_attribution(winner.id, patched.source_url, patched.source_name)
                            articles[win_idx] = patched
                            report.patched += 1
                        store.delete(loser.id)
                        report.deleted += 1
                    except Exception as e:
                        report.failed += 1
                        logger.error(f"Failed to resolve duplicate #{loser.id}: {e}")
                        continue
                removed.add(loser.id)
                if lose_idx == i:
                    break

        if self.adjudicator is not None:
            report.semantic_calls = self.adjudicator.calls_made - calls_before
        logger.info(
            f"Sweep complete: {report.comparisons} comparisons, {report.duplicates_found} duplicates, "
            f"{report.deleted} deleted, {report.patched} patched, {report.failed} failures"
        )
        return report
