"""Cheap text signals used by the dedup cascade."""

from __future__ import annotations

import re
from typing import Optional, Set

from dealwatch.dedup.thresholds import DEFAULT_THRESHOLDS
from dealwatch.ingestion.deal_terms import capitalized_entities, find_amounts, sponsors_in

_FUND_RE = re.compile(r"\bfund\s+(?:[ivx]+|\d+)\b|\b(?:[ivx]+|\d+)(?:st|nd|rd|th)?\s+fund\b", re.IGNORECASE)


def normalize_title(title: Optional[str]) -> str:
    """Case-folded title with punctuation removed and whitespace collapsed."""
    t = re.sub(r"[^a-z0-9 ]", " ", (title or "").lower())
    return re.sub(r"\s+", " ", t).strip()


def title_words(title: Optional[str], min_length: int = DEFAULT_THRESHOLDS.min_word_length) -> Set[str]:
    return {w for w in normalize_title(title).split() if len(w) >= min_length}


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    return jaccard(title_words(a), title_words(b))


def extract_entities(title: Optional[str], summary: Optional[str] = None) -> Set[str]:
    """Amounts, organizations and fund designations of one report.

    Amounts are normalized (`$500 Million` -> `$500m`) so differently formatted reports
    of the same deal still overlap. Organizations carry an `org:` prefix.

    Amounts, known sponsors and fund names are read from the title and the summary.
    Other capitalized names are read from the title only: summary prose names outlets
    and people ("Bloomberg reported", "the Wall Street Journal") that say nothing
    about which deal is being reported.
    """
    text = f"{title or ''} {summary or ''}".strip()
    entities: Set[str] = set(find_amounts(text))
    for sponsor in sponsors_in(text):
        entities.add(f"org:{sponsor}")
    for token in capitalized_entities(title):
        entities.add(f"org:{token}")
    for m in _FUND_RE.finditer(text or ""):
        entities.add("fund:" + re.sub(r"\s+", " ", m.group(0).lower()))
    return entities


def entity_overlap(a: Set[str], b: Set[str]) -> float:
    """Shared entities over all entities; 0.0 when either side has none."""
    return jaccard(a, b)
