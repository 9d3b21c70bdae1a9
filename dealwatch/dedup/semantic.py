"""LLM adjudication for borderline duplicate pairs."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from dealwatch.contracts.llm_payloads import SemanticVerdict, parse_verdict, validate_adjudication
from dealwatch.errors import ParseError
from dealwatch.extraction.llm_client import BaseJSONModel

logger = logging.getLogger(__name__)


ADJUDICATION_SYSTEM_PROMPT = """You are an expert at identifying duplicate financial news articles. Two articles are duplicates only if they report the SAME underlying event: the same deal, fund close or financing, between the same parties.

Different deals that merely share a lender, an amount or a sector are NOT duplicates.

Return JSON: {"isDuplicate": bool, "similarity": number between 0 and 1, "confidence": "low"|"medium"|"high", "reason": str, "recommendation": "keep_first"|"keep_second"|"merge"|"keep_both"}"""


def _describe(label: str, article: Any) -> str:
    day = getattr(article, "date", None)
    return (
        f"{label}:\n"
        f"Title: {article.title}\n"
        f"Source: {article.source_name or 'unknown'}\n"
        f"URL: {article.source_url or 'none'}\n"
        f"Date: {day.isoformat() if day else 'unknown'}\n"
        f"Summary: {article.summary}"
    )


def _pair_key(first: Any, second: Any) -> Optional[Tuple[Any, Any]]:
    a = getattr(first, "id", None)
    b = getattr(second, "id", None)
    if a is None or b is None:
        return None
    return (a, b) if a <= b else (b, a)


class SemanticAdjudicator:
    """Budgeted "same underlying event?" verdicts.

    The budget counts calls since the last `reset_budget()`. Verdicts for stored pairs
    are remembered by record ids for the life of the adjudicator, so a pair is never
    paid for twice and a repeated sweep sees the same answers. Calls are spaced by
    `call_delay` seconds.
    """

    def __init__(
        self,
        model: BaseJSONModel,
        *,
        max_calls: int = 20,
        call_delay: float = 0.15,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model = model
        self.max_calls = max_calls
        self.call_delay = call_delay
        self._sleep = sleep
        self.calls_made = 0
        self._verdicts: Dict[Tuple[Any, Any], SemanticVerdict] = {}

    @property
    def budget_remaining(self) -> int:
        return max(0, self.max_calls - self.calls_made)

    def reset_budget(self) -> None:
        self.calls_made = 0

    def cached_verdict(self, first: Any, second: Any) -> Optional[SemanticVerdict]:
        key = _pair_key(first, second)
        return self._verdicts.get(key) if key is not None else None

    def adjudicate(self, first: Any, second: Any) -> Optional[SemanticVerdict]:
        """Verdict for the pair, or None once the budget is spent and the pair was never judged."""
        cached = self.cached_verdict(first, second)
        if cached is not None:
            return cached
        if self.budget_remaining <= 0:
            return None
        if self.calls_made > 0 and self.call_delay > 0:
            self._sleep(self.call_delay)
        self.calls_made += 1

        payload = self.model.complete_json(
            ADJUDICATION_SYSTEM_PROMPT,
            "Compare these two articles and determine if they describe the same event:\n\n"
            + _describe("ARTICLE 1", first)
            + "\n\n"
            + _describe("ARTICLE 2", second),
            max_tokens=300,
        )
        errors = validate_adjudication(payload)
        if errors:
            raise ParseError("adjudication payload invalid: " + "; ".join(errors))
        verdict = parse_verdict(payload)
        logger.debug(
            f"Semantic verdict: duplicate={verdict.is_duplicate} similarity={verdict.similarity:.2f} "
            f"confidence={verdict.confidence}"
        )
        key = _pair_key(first, second)
        if key is not None:
            self._verdicts[key] = verdict
        return verdict
