"""Turn one search section into candidate deal articles.

The language model does the heavy lifting; everything around it is defensive:
placeholder filtering, a near-identical merge inside the batch, sentence clamping,
emphasis markup, URL recovery from the raw section and keyword category inference.
A failed or malformed model answer never escapes this module; it degrades to a
single summary candidate instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from dealwatch.contracts.llm_payloads import validate_extraction, validate_summary
from dealwatch.errors import CollaboratorError, ParseError
from dealwatch.extraction.llm_client import BaseJSONModel
from dealwatch.ingestion.article_types import (
    DEFAULT_CATEGORY,
    DEFAULT_SOURCE_NAME,
    CandidateArticle,
    SearchSection,
)
from dealwatch.ingestion.deal_terms import (
    CURRENCY_AMOUNT_RE,
    first_capitalized_token,
    first_deal_keyword,
    infer_category,
)
from dealwatch.ingestion.url_utils import (
    extract_urls,
    is_http_url,
    is_reputable,
    recover_source_url,
    source_name_for_url,
)

logger = logging.getLogger(__name__)


MIN_TITLE_CHARS = 10
MIN_SUMMARY_CHARS = 30
MAX_TITLE_CHARS = 200
MAX_SUMMARY_SENTENCES = 3
URL_CONTEXT_CHARS = 400

PLACEHOLDER_PATTERNS = [
    r"\bno (?:specific |significant |new |relevant )?(?:deals?|news|announcements?|transactions?|articles?) (?:were |was )?(?:found|reported|available|identified)\b",
    r"\bno summary available\b",
    r"\bnews update\b",
    r"\blimited (?:specific )?(?:news|market activity|information)\b",
    r"\bsearch temporarily unavailable\b",
    r"\bnot (?:available|disclosed|specified)\b$",
    r"^\s*(?:n/?a|none|null|untitled|tbd|unknown)\s*$",
    r"\bi (?:could not|couldn't|was unable to) find\b",
    r"\bunable to (?:find|locate|verify)\b",
]
_PLACEHOLDER_RES = [re.compile(p, re.IGNORECASE) for p in PLACEHOLDER_PATTERNS]

GENERIC_CATEGORIES = {"", "unknown", "n/a", "none", "other", "general", "misc", "null"}
GENERIC_SOURCES = {"", "unknown", "n/a", "none", "null", "financial news", "news", "web"}

_DEAL_PHRASE_RE = re.compile(
    r"\b(revolving credit facility|credit facility|term loan|asset-based lending|abl facility|unitranche (?:loan|facility)?"
    r"|venture debt|direct lending fund|private credit fund|credit fund|fund|financing|refinancing|loan|notes)\b",
    re.IGNORECASE,
)
_ABBREVIATIONS = ("inc.", "corp.", "co.", "ltd.", "l.p.", "u.s.", "jr.", "st.", "no.", "llc.", "plc.", "n.a.")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9*\"'$€£(])")


EXTRACTION_SYSTEM_PROMPT = """You extract individual private credit news items from search results.

Return JSON: {"articles": [{"title": str, "summary": str, "category": str, "sourceUrl": str|null, "originalSource": str|null}]}

Rules:
- One entry per distinct deal, fund close, financing or rating action. Never merge unrelated deals.
- title: specific and factual, naming the lender/sponsor, borrower and amount when known (max 120 characters).
- summary: 2-3 sentences. Bold the key figures and names with **double asterisks**.
- category: one of Credit Facility, Fund Raising, M&A Financing, Securitization, Rating Action, Distressed & Special Situations, Venture Debt, Market News.
- sourceUrl: the exact article or press-release link from the text, or null. Never invent links.
- originalSource: the publishing outlet (e.g. Reuters, Bloomberg, Business Wire), or null.
- If the text contains no concrete deals, return {"articles": []}. Do not return placeholder entries."""

SUMMARY_SYSTEM_PROMPT = """You are a financial analyst specializing in private credit markets. Summarize the deal announcements you are given.

Return JSON: {"title": str, "summary": str, "category": str|null, "sourceUrl": str|null, "originalSource": str|null}
- title: concise and informative (max 100 characters)
- summary: 2-3 sentences with the key deals, companies and sizes in **bold**"""


def is_placeholder(title: Optional[str], summary: Optional[str]) -> bool:
    t = (title or "").strip()
    s = (summary or "").strip()
    if len(t) < MIN_TITLE_CHARS or len(s) < MIN_SUMMARY_CHARS:
        return True
    return any(r.search(t) or r.search(s) for r in _PLACEHOLDER_RES)


def split_sentences(text: str) -> List[str]:
    pieces = [p.strip() for p in _SENTENCE_SPLIT_RE.split(text.strip()) if p.strip()]
    out: List[str] = []
    for piece in pieces:
        if out and out[-1].lower().endswith(_ABBREVIATIONS):
            out[-1] = f"{out[-1]} {piece}"
        else:
            out.append(piece)
    return out


def clamp_sentences(text: str, max_sentences: int = MAX_SUMMARY_SENTENCES) -> str:
    sentences = split_sentences(text)
    if len(sentences) <= max_sentences:
        return " ".join(sentences)
    return " ".join(sentences[:max_sentences])


def ensure_emphasis(summary: str) -> str:
    """Make sure the summary carries at least one `**bold**` span."""
    if "**" in summary:
        return summary
    out = CURRENCY_AMOUNT_RE.sub(lambda m: f"**{m.group(0).strip()}**", summary)
    out = _DEAL_PHRASE_RE.sub(lambda m: f"**{m.group(0)}**", out, count=1)
    if "**" in out:
        return out
    m = re.search(r"\b[A-Z][A-Za-z0-9&\-]+", out)
    if m:
        return out[: m.start()] + f"**{m.group(0)}**" + out[m.end():]
    words = out.split(" ", 1)
    return f"**{words[0]}**" + (f" {words[1]}" if len(words) > 1 else "")


def _clean_title(title: str) -> str:
    t = re.sub(r"[*_#`]", "", title or "")
    t = re.sub(r"\s+", " ", t).strip().strip('"').strip()
    return t[:MAX_TITLE_CHARS].rstrip()


def _clean_summary(summary: str) -> str:
    return re.sub(r"\s+", " ", summary or "").strip()


def coarse_key(title: str) -> Optional[Tuple[Optional[str], Optional[str]]]:
    """(first capitalized token, first deal keyword); None when neither exists."""
    key = (first_capitalized_token(title), first_deal_keyword(title))
    if key == (None, None):
        return None
    return key


def inherit_attribution(winner: Any, loser: Any) -> Any:
    """`winner` with the loser's URL (and source name) filled in where it had none."""
    if winner.source_url or not loser.source_url:
        return winner
    source_name = winner.source_name
    if (source_name or "").strip().lower() in GENERIC_SOURCES and (loser.source_name or "").strip().lower() not in GENERIC_SOURCES:
        source_name = loser.source_name
    return replace(winner, source_url=loser.source_url, source_name=source_name)


def _prefer(current: CandidateArticle, challenger: CandidateArticle) -> CandidateArticle:
    if len(challenger.summary) != len(current.summary):
        winner, loser = (challenger, current) if len(challenger.summary) > len(current.summary) else (current, challenger)
    elif challenger.source_url and not current.source_url:
        winner, loser = challenger, current
    else:
        winner, loser = current, challenger
    return inherit_attribution(winner, loser)


def merge_near_identical(candidates: List[CandidateArticle]) -> List[CandidateArticle]:
    """Collapse candidates sharing a coarse key, keeping first-seen order."""
    order: List[Any] = []
    best: Dict[Any, CandidateArticle] = {}
    for i, cand in enumerate(candidates):
        key = coarse_key(cand.title)
        if key is None:
            key = ("__unkeyed__", i)
        if key in best:
            best[key] = _prefer(best[key], cand)
        else:
            order.append(key)
            best[key] = cand
    return [best[k] for k in order]


def recover_url_near(section_text: str, title: str) -> Optional[str]:
    """A URL from the section, preferring links that sit near the article's lead entity."""
    anchor = first_capitalized_token(title)
    if anchor:
        low = section_text.lower()
        nearby: List[str] = []
        for url in extract_urls(section_text):
            pos = section_text.find(url)
            window = low[max(0, pos - URL_CONTEXT_CHARS): pos]
            if anchor in window:
                nearby.append(url)
        for url in nearby:
            if is_reputable(url):
                return url
        if nearby:
            return nearby[0]
    return recover_source_url(section_text)


class ArticleExtractor:
    def __init__(self, model: BaseJSONModel):
        self.model = model

    def extract(self, section: SearchSection) -> List[CandidateArticle]:
        """Candidate articles for one section; never raises on collaborator failure."""
        try:
            raw_articles = self._extract_via_model(section)
        except CollaboratorError as e:
            logger.warning(f"Extraction failed for '{section.category}' ({e}); using fallback summary")
            fallback = self.fallback_candidate(section)
            return [fallback] if fallback else []

        candidates: List[CandidateArticle] = []
        for raw in raw_articles:
            cand = self._normalize(raw, section)
            if cand is None:
                logger.info(f"Skipping placeholder/invalid article: \"{raw.get('title')}\"")
                continue
            candidates.append(cand)

        merged = merge_near_identical(candidates)
        if len(merged) < len(candidates):
            logger.info(f"Merged {len(candidates) - len(merged)} near-identical candidates in '{section.category}'")
        logger.info(f"Found {len(merged)} articles in {section.category} section")
        return merged

    def fallback_candidate(self, section: SearchSection) -> Optional[CandidateArticle]:
        """At most one candidate summarizing the whole section."""
        payload: Dict[str, Any]
        try:
            payload = self.model.complete_json(
                SUMMARY_SYSTEM_PROMPT,
                f"Please analyze and summarize these private credit deal announcements:\n\n{section.content}",
                max_tokens=600,
            )
            errors = validate_summary(payload)
            if errors:
                raise ParseError("; ".join(errors))
        except CollaboratorError as e:
            logger.warning(f"Fallback summary call failed for '{section.category}': {e}")
            payload = self._local_summary(section)

        cand = self._normalize(payload, section)
        if cand is None:
            logger.info(f"Fallback summary for '{section.category}' was empty")
        return cand

    def _extract_via_model(self, section: SearchSection) -> List[Dict[str, Any]]:
        payload = self.model.complete_json(
            EXTRACTION_SYSTEM_PROMPT,
            f"Section: {section.category}\n\nExtract every distinct news item from this text:\n\n{section.content}",
            max_tokens=2000,
        )
        errors = validate_extraction(payload)
        if errors:
            raise ParseError("extraction payload invalid: " + "; ".join(errors[:5]))
        return [a for a in payload["articles"] if isinstance(a, dict)]

    def _local_summary(self, section: SearchSection) -> Dict[str, Any]:
        lines = [re.sub(r"^[\s•▪*\-]*(?:\d{1,2}[.)]\s+)?", "", ln).strip() for ln in section.content.splitlines()]
        lines = [ln for ln in lines if ln and not ln.lower().startswith(("http://", "https://"))]
        if not lines:
            return {"title": "", "summary": ""}
        title = lines[0]
        if ":" in title and len(title.split(":", 1)[1].strip()) > MIN_TITLE_CHARS:
            title = title.split(":", 1)[1]
        title = _clean_title(title)
        if len(title) > 120:
            title = title[:117].rsplit(" ", 1)[0] + "..."
        body = re.sub(r"https?://\S+", "", " ".join(lines))
        return {"title": title, "summary": clamp_sentences(_clean_summary(re.sub(r"[*_#`]", "", body)))}

    def _normalize(self, raw: Dict[str, Any], section: SearchSection) -> Optional[CandidateArticle]:
        title = _clean_title(str(raw.get("title") or ""))
        summary = _clean_summary(str(raw.get("summary") or ""))
        if is_placeholder(title, summary):
            return None

        summary = ensure_emphasis(clamp_sentences(summary))

        url = raw.get("sourceUrl")
        url = url.strip() if isinstance(url, str) else None
        if not is_http_url(url):
            url = recover_url_near(section.content, title)

        source_name = str(raw.get("originalSource") or "").strip()
        if source_name.lower() in GENERIC_SOURCES:
            source_name = source_name_for_url(url) or DEFAULT_SOURCE_NAME

        category = str(raw.get("category") or "").strip()
        if category.lower() in GENERIC_CATEGORIES:
            category = infer_category(f"{title} {summary}") or DEFAULT_CATEGORY

        return CandidateArticle(
            title=title,
            summary=summary,
            category=category,
            source_name=source_name,
            source_url=url,
            origin_section_text=section.content,
        )
