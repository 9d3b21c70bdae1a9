"""Search collaborator backed by the Perplexity chat-completions API."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import requests

from dealwatch.reliability import retry_with_backoff

logger = logging.getLogger(__name__)


SEARCH_UNAVAILABLE = "Search temporarily unavailable."

SEARCH_SYSTEM_PROMPT = """You are a financial news analyst specializing in private credit markets. Search for and report on actual deal announcements, fundraising news, and transactions. Always include:
1. Company/fund names
2. Deal amounts (if disclosed)
3. Transaction type
4. Industry/sector
5. Source publication and a link to the announcement
6. Date of announcement

Focus on factual announcements from credible financial news sources."""

_CITATION_MARKER_RE = re.compile(r"\[(\d{1,3})\]")


def inline_citations(content: str, citations: List[Any]) -> str:
    """Swap `[n]` markers for the cited URL so each paragraph carries its own link.

    Answers without markers get the citation list appended under a "Sources:" heading.
    """
    urls = [c for c in citations if isinstance(c, str)]
    replaced = 0

    def _swap(m: re.Match) -> str:
        nonlocal replaced
        index = int(m.group(1)) - 1
        if 0 <= index < len(urls):
            replaced += 1
            return f" ({urls[index]})"
        return m.group(0)

    text = _CITATION_MARKER_RE.sub(_swap, content)
    if not replaced and urls:
        text += "\n\nSources:\n" + "\n".join(f"- {u}" for u in urls)
    return text


class BaseSearchClient:
    """Collaborator seam: free-text query in, free-text answer out."""

    name: str = "base"

    def search(self, query: str, category: Optional[str] = None) -> str:
        raise NotImplementedError


class PerplexitySearchClient(BaseSearchClient):
    name = "perplexity"
    endpoint = "https://api.perplexity.ai/chat/completions"

    def __init__(self, api_key: str, *, model: str = "sonar", timeout: float = 30.0, max_tokens: int = 1500):
        # Keys pasted from dashboards sometimes carry zero-width or control characters.
        self.api_key = "".join(ch for ch in (api_key or "") if 0x20 <= ord(ch) <= 0x7E).strip()
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens

    def search(self, query: str, category: Optional[str] = None) -> str:
        """Return the answer text, or `SEARCH_UNAVAILABLE` when the call fails."""
        system = SEARCH_SYSTEM_PROMPT
        if category:
            system += f"\n\nThis request covers the '{category}' segment."
        try:
            data = self._post(system, query)
        except requests.exceptions.Timeout:
            logger.error(f"Search request timed out after {self.timeout}s")
            return SEARCH_UNAVAILABLE
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                logger.error("Search authentication failed - check PERPLEXITY_API_KEY")
            elif status == 429:
                logger.error("Search rate limit exceeded")
            else:
                logger.error(f"Search HTTP error: {e}")
            return SEARCH_UNAVAILABLE
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Search request failed: {e}")
            return SEARCH_UNAVAILABLE

        choices = data.get("choices") or []
        if not choices:
            return SEARCH_UNAVAILABLE
        content = ((choices[0] or {}).get("message") or {}).get("content") or ""
        citations = data.get("citations") or []
        if content and citations:
            # Keep the links in the text so the extractor can recover attribution.
            content = inline_citations(content, citations)
        return content or SEARCH_UNAVAILABLE

    @retry_with_backoff(max_retries=2, base_delay=2.0, retry_on=(requests.exceptions.ConnectionError, requests.exceptions.Timeout))
    def _post(self, system_prompt: str, query: str) -> dict:
        resp = requests.post(
            self.endpoint,
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": query},
                ],
                "max_tokens": self.max_tokens,
                "temperature": 0.1,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "User-Agent": "dealwatch/1.0",
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() or {}
