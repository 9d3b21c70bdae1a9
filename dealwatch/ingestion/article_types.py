"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional


DEFAULT_CATEGORY = "Market News"
DEFAULT_SOURCE_NAME = "Financial News"


@dataclass(frozen=True)
class SearchSection:
    """One labeled slice of a raw search blob, consumed by the extractor."""

    category: str
    content: str


@dataclass(frozen=True)
class CandidateArticle:
    """Extracted, not yet persisted deal article.

    `origin_section_text` keeps the section the article came from so URL recovery and
    fallback summaries can look back at it.
    """

    title: str
    summary: str
    category: str = DEFAULT_CATEGORY
    source_name: str = DEFAULT_SOURCE_NAME
    source_url: Optional[str] = None
    origin_section_text: str = ""


@dataclass(frozen=True)
class StoredArticle:
    """A persisted deal record.

    `date` is the fetch-target date of the ingestion run that created the record, never
    a date mined from the text.
    """

    id: Optional[int]
    date: date
    title: str
    summary: str
    content: str = ""
    source_name: str = DEFAULT_SOURCE_NAME
    source_url: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    upvotes: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DuplicatePairAnalysis:
    """Outcome of comparing two articles.

    `action` is `merge` when the losing record carries attribution the winner lacks;
    `keep_index` (0 = first, 1 = second) names the winner for every duplicate verdict.
    """

    is_duplicate: bool
    similarity: float
    confidence: str  # low | medium | high
    stage: str  # exact | lexical | entity | semantic | none
    action: str  # keep_first | keep_second | merge | keep_both
    reason: str = ""
    keep_index: Optional[int] = None


@dataclass
class SweepReport:
    examined: int = 0
    comparisons: int = 0
    semantic_calls: int = 0
    duplicates_found: int = 0
    deleted: int = 0
    patched: int = 0
    failed: int = 0
    dry_run: bool = False
    pairs: List[dict] = field(default_factory=list)


@dataclass
class RunSummary:
    """Counters for one ingestion run or standalone sweep.

    `status` is one of ok, partial (some errors), no_content, rejected, failed.
    `section_counts` records how many candidates each section yielded, zero included.
    """

    kind: str = "ingest"
    status: str = "ok"
    target_date: Optional[date] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    sections: int = 0
    candidates: int = 0
    saved: int = 0
    patched: int = 0
    skipped: int = 0
    errors: int = 0
    sweep: Optional[SweepReport] = None
    message: str = ""
    section_counts: Dict[str, int] = field(default_factory=dict)
