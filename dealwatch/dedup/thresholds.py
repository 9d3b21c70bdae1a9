"""Duplicate-detection thresholds.

One set of numbers serves both the write-time check and the cleanup sweep so the two
paths can never disagree about what a duplicate is.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DedupThresholds:
    # URLs at or below this length ("https://x.co") are too generic to match on.
    min_url_length: int = 12
    lexical_same_source: float = 0.85
    lexical_cross_source: float = 0.95
    # Lexical similarity at which a pair becomes worth an LLM opinion.
    lexical_borderline: float = 0.5
    # Strictly greater than.
    entity_overlap: float = 0.6
    semantic_min_similarity: float = 0.8
    semantic_window_hours: float = 72.0
    # Title words of this length or shorter are ignored by the lexical stage.
    min_word_length: int = 4


DEFAULT_THRESHOLDS = DedupThresholds()
