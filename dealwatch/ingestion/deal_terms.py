"""Private-credit vocabulary shared by extraction, dedup and scoring."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple


# Order matters: the first keyword found in a title is the deal "type" of that title.
DEAL_TYPE_KEYWORDS = [
    "credit",
    "facility",
    "loan",
    "financing",
    "fund",
    "lending",
    "debt",
    "notes",
    "bond",
    "refinancing",
    "unitranche",
    "mezzanine",
    "securitization",
    "clo",
    "abl",
    "revolver",
    "revolving",
]

# Terms that make two texts comparable as deal reports.
DEAL_OVERLAP_TERMS = {"credit", "facility", "loan", "fund", "financing", "lending", "debt", "revolving", "unitranche"}

KNOWN_SPONSORS = [
    "apollo",
    "blackstone",
    "kkr",
    "ares",
    "oaktree",
    "carlyle",
    "blue owl",
    "golub",
    "hps",
    "sixth street",
    "bain capital",
    "monroe capital",
    "tpg",
    "brookfield",
    "antares",
    "churchill",
    "owl rock",
    "fortress",
    "goldman sachs",
    "jpmorgan",
]

# Capitalized words that appear in title-cased headlines but do not name an entity.
GENERIC_CAPITALIZED = {
    "a", "an", "and", "as", "at", "by", "for", "from", "in", "into", "of", "on", "or",
    "the", "to", "with", "its", "it", "this", "that", "these", "new", "after", "amid",
    "over", "up", "down", "per", "via", "deal", "deals", "financing", "finance", "credit",
    "facility", "facilities", "loan", "loans", "fund", "funds", "capital", "debt",
    "lending", "lender", "lenders", "borrower", "private", "direct", "term", "revolving",
    "revolver", "senior", "secured", "unsecured", "notes", "note", "bond", "bonds",
    "million", "billion", "provides", "provide", "provided", "closes", "closed", "close",
    "raises", "raised", "raise", "secures", "launches", "launched", "launch",
    "announces", "announced", "completes", "completed", "increases", "increased",
    "boosts", "expands", "expanded", "extends", "extended", "refinances", "refinancing",
    "agrees", "signs", "backs", "leads", "led", "arranges", "commits", "targets",
    "first", "final", "second", "third", "inc", "llc", "ltd", "corp", "co", "lp",
    "management", "partners", "group", "holdings", "investments", "investment",
    "market", "markets", "news", "update", "report", "reports", "transaction",
    "acquisition", "buyout", "merger", "company", "companies", "firm", "firms", "abl",
    "clo", "smb", "us", "u.s", "q1", "q2", "q3", "q4", "monday", "tuesday",
    "wednesday", "thursday", "friday", "saturday", "sunday", "january", "february",
    "march", "april", "may", "june", "july", "august", "september", "october",
    "november", "december", "asset", "based", "working", "unitranche", "mezzanine",
    "securitization", "rating", "ratings", "vehicle", "platform", "strategy",
}

CATEGORY_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Rating Action", (" rating", " rated ", "upgrade", "downgrade", "moody", "fitch", "s&p", "kbra")),
    ("Securitization", ("securitization", "securitisation", "asset-backed", " abs ", " clo ", " clos ", "collateralized loan")),
    ("Distressed & Special Situations", ("distressed", "restructuring", "dip financing", "debtor-in-possession", "bankruptcy", "rescue")),
    ("M&A Financing", ("acquisition", "buyout", "lbo", "merger", "take-private", "takeover")),
    ("Fund Raising", ("final close", "first close", "fundraise", "fundraising", "raises", "closes fund", "fund launch", " fund ")),
    ("Venture Debt", ("venture debt", "growth debt")),
    ("Credit Facility", ("credit facility", "revolving", "revolver", " abl ", "term loan", "unitranche", "loan", "facility", "financing")),
]

CURRENCY_AMOUNT_RE = re.compile(
    r"[$€£]\s?\d[\d,]*(?:\.\d+)?(?:\s?(?:million|billion|thousand|mm|bn|m|b|k))?\b",
    re.IGNORECASE,
)

_MAGNITUDES = {
    "million": "m",
    "mm": "m",
    "m": "m",
    "billion": "b",
    "bn": "b",
    "b": "b",
    "thousand": "k",
    "k": "k",
}

_CAPITALIZED_TOKEN_RE = re.compile(r"\b[A-Z][A-Za-z0-9&\-]+")


def normalize_amount(raw: str) -> str:
    """`$ 500 Million` -> `$500m`, `€1.5bn` -> `€1.5b`."""
    s = raw.strip().lower().replace(",", "")
    m = re.match(r"([$€£])\s?(\d+(?:\.\d+)?)\s?([a-z]*)", s)
    if not m:
        return s.replace(" ", "")
    symbol, number, suffix = m.groups()
    if "." in number:
        number = number.rstrip("0").rstrip(".")
    return f"{symbol}{number}{_MAGNITUDES.get(suffix, '')}"


def find_amounts(text: Optional[str]) -> List[str]:
    return [normalize_amount(m.group(0)) for m in CURRENCY_AMOUNT_RE.finditer(text or "")]


def has_amount(text: Optional[str]) -> bool:
    return bool(CURRENCY_AMOUNT_RE.search(text or ""))


def first_deal_keyword(title: Optional[str]) -> Optional[str]:
    """First deal-type keyword by position in the title."""
    for word in re.findall(r"[a-z]+", (title or "").lower()):
        if word in DEAL_TYPE_KEYWORDS:
            return word
    return None


def has_deal_terms(text: Optional[str]) -> bool:
    words = set(re.findall(r"[a-z]+", (text or "").lower()))
    return bool(words & DEAL_OVERLAP_TERMS)


def first_capitalized_token(title: Optional[str]) -> Optional[str]:
    """First capitalized multi-character token, possessive stripped, lowercased."""
    for m in _CAPITALIZED_TOKEN_RE.finditer(title or ""):
        token = m.group(0)
        if token.endswith("'s"):
            token = token[:-2]
        if len(token) > 1:
            return token.lower()
    return None


def capitalized_entities(text: Optional[str]) -> List[str]:
    """Capitalized tokens that plausibly name a company, sponsor or borrower."""
    out: List[str] = []
    for m in re.finditer(r"\b[A-Z][A-Za-z0-9&\-]+(?:'s)?", text or ""):
        token = m.group(0)
        if token.endswith("'s"):
            token = token[:-2]
        low = token.lower()
        if len(low) < 3 or low in GENERIC_CAPITALIZED:
            continue
        if low not in out:
            out.append(low)
    return out


def sponsors_in(text: Optional[str]) -> List[str]:
    low = (text or "").lower()
    return [s for s in KNOWN_SPONSORS if re.search(r"\b" + re.escape(s) + r"\b", low)]


def infer_category(text: Optional[str]) -> str:
    blob = " " + re.sub(r"[^a-z0-9&'\- ]", " ", (text or "").lower()) + " "
    for category, keywords in CATEGORY_RULES:
        if any(k in blob for k in keywords):
            return category
    return "Market News"
