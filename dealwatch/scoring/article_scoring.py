"""Survivor scoring for duplicate pairs.

When two records describe the same deal, the one with the more accessible source,
richer title and summary, more engagement and fresher timestamp survives. The score is
a plain weighted sum so that the choice is reproducible given a fixed `now`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from dealwatch.ingestion.deal_terms import first_deal_keyword, sponsors_in
from dealwatch.ingestion.url_utils import domain_of


# -----------------------------
# Source accessibility tiers
# -----------------------------
FREE_DOMAINS = (
    "reuters.com",
    "yahoo.com",
    "marketwatch.com",
    "cnbc.com",
    "businesswire.com",
    "prnewswire.com",
    "seekingalpha.com",
    "benzinga.com",
)
PARTIAL_PAYWALL_DOMAINS = ("ft.com", "wsj.com")
PAYWALL_DOMAINS = ("bloomberg.com",)

FREE_SOURCE_NAMES = (
    "reuters",
    "yahoo",
    "marketwatch",
    "cnbc",
    "business wire",
    "businesswire",
    "pr newswire",
    "prnewswire",
    "seeking alpha",
    "benzinga",
)
GENERIC_SOURCE_NAME = "financial news"


def _on_domain(host: str, domains: Tuple[str, ...]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def url_tier_score(url: Optional[str]) -> float:
    if not url or not url.strip():
        return -20.0
    host = domain_of(url) or ""
    if _on_domain(host, FREE_DOMAINS):
        return 50.0
    if _on_domain(host, PARTIAL_PAYWALL_DOMAINS):
        return 30.0
    if _on_domain(host, PAYWALL_DOMAINS):
        return 20.0
    if url.strip().lower().startswith("https://"):
        return 25.0
    return 10.0


def source_name_score(source_name: Optional[str]) -> float:
    name = (source_name or "").strip().lower()
    if not name:
        return 0.0
    if any(k in name for k in FREE_SOURCE_NAMES):
        return 25.0
    if "bloomberg terminal" in name:
        return 10.0
    if "bloomberg" in name:
        return 15.0
    if name == GENERIC_SOURCE_NAME:
        return 5.0
    return 8.0


# -----------------------------
# Content richness
# -----------------------------
def title_score(title: Optional[str]) -> float:
    t = title or ""
    score = min(len(t) / 8.0, 15.0)
    if "$" in t or re.search(r"\b(million|billion)\b", t, re.IGNORECASE):
        score += 15.0
    if sponsors_in(t):
        score += 10.0
    if first_deal_keyword(t):
        score += 8.0
    return score


def summary_score(summary: Optional[str]) -> float:
    s = summary or ""
    score = min(len(s) / 15.0, 20.0)
    if "**" in s:
        score += 8.0
    if "$" in s and re.search(r"\b(million|billion)\b", s, re.IGNORECASE):
        score += 5.0
    return score


def recency_bonus(created_at: Optional[datetime], now: datetime) -> float:
    if not created_at:
        return 0.0
    dt = created_at if created_at.tzinfo else created_at.replace(tzinfo=timezone.utc)
    ref = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    age_hours = (ref - dt).total_seconds() / 3600.0
    if age_hours < 24:
        return 5.0
    if age_hours < 48:
        return 3.0
    return 0.0


@dataclass(frozen=True)
class SurvivorScore:
    url: float
    source: float
    title: float
    summary: float
    engagement: float
    recency: float

    @property
    def total(self) -> float:
        return self.url + self.source + self.title + self.summary + self.engagement + self.recency


def score_survivor(article: Any, now: datetime) -> SurvivorScore:
    """Score a stored or candidate article. Candidates have no upvotes or timestamp."""
    return SurvivorScore(
        url=url_tier_score(getattr(article, "source_url", None)),
        source=source_name_score(getattr(article, "source_name", None)),
        title=title_score(getattr(article, "title", None)),
        summary=summary_score(getattr(article, "summary", None)),
        engagement=3.0 * float(getattr(article, "upvotes", 0) or 0),
        recency=recency_bonus(getattr(article, "created_at", None), now),
    )


def pick_survivor(first: Any, second: Any, now: datetime) -> Tuple[int, SurvivorScore, SurvivorScore]:
    """(index of the survivor, first score, second score); ties keep the first."""
    a = score_survivor(first, now)
    b = score_survivor(second, now)
    return (1 if b.total > a.total else 0), a, b
