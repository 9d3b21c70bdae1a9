"""Multi-strategy search for one fetch-target date.

Every call to the search collaborator is sequential with a fixed pause in between; a
category whose variants all come back thin gets one broader fallback query. Nothing
here raises: total failure is reported with the `NO_CONTENT` sentinel.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Callable, List, Optional, Sequence

from dealwatch.search.perplexity import SEARCH_UNAVAILABLE, BaseSearchClient

logger = logging.getLogger(__name__)


NO_CONTENT = "__no_content__"
MIN_RESULT_CHARS = 100
DEFAULT_CATEGORY_HINTS = ("Private Credit",)

QUERY_TEMPLATES = [
    """Search for {category} deals and announcements from {day}. Find news from Bloomberg, Reuters, Private Debt Investor, PEI News, Creditflux, and company press releases about:

FUND ACTIVITY:
- Private credit fund launches, first close, final close
- Direct lending fund raises by Apollo, Blackstone, KKR, Ares, Oaktree, Bain Capital Credit
- Middle market lending and distressed debt fund formations

TRANSACTIONS & CREDIT FACILITIES:
- ABL (asset-based lending) and working capital facilities
- Private credit financing to specific named companies
- Unitranche, equipment and real estate credit transactions

Include company names, deal sizes, borrower and lender names, the publishing outlet and a link.""",
    """Find alternative lending and specialty finance deals in {category} from {day}:

ALTERNATIVE CREDIT:
- Business development company (BDC) investments
- CLO issuances and private placements
- Mezzanine and venture debt transactions

DISTRESSED & SPECIAL SITUATIONS:
- DIP financing, rescue financing, restructurings
- NPL acquisitions and opportunistic credit investments

CORPORATE CREDIT:
- Term loan signings, LBO financing, refinancings, credit facility amendments

Include amounts, participants, the publishing outlet and a link for every item.""",
    """Search for institutional {category} market activity from {day}:

- Insurance, pension, endowment and sovereign allocations to private debt
- Credit rating actions on private credit vehicles and borrowers
- Private credit platform launches and strategic lending partnerships
- Senior hires and new offices at credit managers

Search sources: Private Equity International, Preqin, S&P Global, Fitch, Moody's, LevFin Insights. Cite the outlet and link for each item.""",
]

FALLBACK_TEMPLATE = """Search for ANY credit deals, lending transactions, and financial announcements related to {category} from {day}, including direct lending, private debt, asset-based lending, venture debt, BDC investments, CLO issuances, fund launches and closes, refinancings, LBO financing and DIP financing by lenders such as Apollo, Blackstone Credit, KKR Credit, Ares, Oaktree, Blue Owl, Golub, HPS and Monroe Capital.

Search press releases, company announcements and financial news. Include company names, deal amounts, borrower details, the outlet and a link."""


def format_target_date(target_date: date) -> str:
    """`Friday, March 7, 2025` style used in the prompts."""
    return f"{target_date.strftime('%A')}, {target_date.strftime('%B')} {target_date.day}, {target_date.year}"


def _usable(text: Optional[str]) -> bool:
    if not text or text == SEARCH_UNAVAILABLE:
        return False
    return len(text.strip()) > MIN_RESULT_CHARS


class SearchOrchestrator:
    def __init__(
        self,
        client: BaseSearchClient,
        *,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._calls_made = 0

    def build_queries(self, target_date: date, category: str) -> List[str]:
        day = format_target_date(target_date)
        return [t.format(category=category, day=day) for t in QUERY_TEMPLATES]

    def search(self, target_date: date, category_hints: Optional[Sequence[str]] = None) -> str:
        """Concatenated usable results for `target_date`, or `NO_CONTENT`."""
        categories = [c for c in (category_hints or DEFAULT_CATEGORY_HINTS) if c and c.strip()]
        if not categories:
            categories = list(DEFAULT_CATEGORY_HINTS)

        self._calls_made = 0
        blocks: List[str] = []
        for category in categories:
            accepted = 0
            queries = self.build_queries(target_date, category)
            for i, query in enumerate(queries, start=1):
                logger.info(f"Executing search strategy {i}/{len(queries)} for {category} on {target_date.isoformat()}")
                result = self._call(query, category)
                if _usable(result):
                    blocks.append(f"=== {category} | strategy {i} ===\n{result.strip()}")
                    accepted += 1
                else:
                    logger.info(f"Search strategy {i} for {category} returned no usable content")

            if accepted == 0:
                logger.info(f"All strategies thin for {category}; executing fallback search")
                result = self._call(FALLBACK_TEMPLATE.format(category=category, day=format_target_date(target_date)), category)
                if _usable(result):
                    blocks.append(f"=== {category} | fallback ===\n{result.strip()}")

        if not blocks:
            logger.warning(f"No usable search content for {target_date.isoformat()}")
            return NO_CONTENT
        return "\n\n".join(blocks)

    def _call(self, query: str, category: str) -> Optional[str]:
        if self._calls_made > 0 and self.delay_seconds > 0:
            self._sleep(self.delay_seconds)
        self._calls_made += 1
        try:
            return self.client.search(query, category)
        except Exception as e:
            # Collaborators are expected to return a sentinel, but one bad client must not end the run.
            logger.error(f"Search call failed for {category}: {e}")
            return None
