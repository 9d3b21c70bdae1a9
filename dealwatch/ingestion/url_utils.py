"""URL helpers for attribution recovery and exact-match dedup."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


DEFAULT_STRIP_QUERY_PARAMS = {
    # tracking
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "utm_name",
    # misc common trackers
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
    "cmpid",
    "taid",
}

# Outlets we would rather cite when a section mentions several links.
REPUTABLE_DOMAINS = (
    "reuters.com",
    "bloomberg.com",
    "wsj.com",
    "ft.com",
    "cnbc.com",
    "marketwatch.com",
    "finance.yahoo.com",
    "businesswire.com",
    "prnewswire.com",
    "globenewswire.com",
    "privatedebtinvestor.com",
    "pehub.com",
    "pitchbook.com",
    "creditflux.com",
    "institutionalinvestor.com",
    "seekingalpha.com",
    "benzinga.com",
)

DOMAIN_SOURCE_NAMES = {
    "reuters.com": "Reuters",
    "bloomberg.com": "Bloomberg",
    "wsj.com": "Wall Street Journal",
    "ft.com": "Financial Times",
    "cnbc.com": "CNBC",
    "marketwatch.com": "MarketWatch",
    "yahoo.com": "Yahoo Finance",
    "businesswire.com": "Business Wire",
    "prnewswire.com": "PR Newswire",
    "globenewswire.com": "GlobeNewswire",
    "privatedebtinvestor.com": "Private Debt Investor",
    "pehub.com": "PE Hub",
    "pitchbook.com": "PitchBook",
    "creditflux.com": "Creditflux",
    "seekingalpha.com": "Seeking Alpha",
    "benzinga.com": "Benzinga",
}

_URL_RE = re.compile(r"https?://[^\s<>\"'\)\]]+", re.IGNORECASE)
_TRAILING_PUNCT = ".,;:!?*"


def canonicalize_url(url: Optional[str], *, strip_params: Optional[Iterable[str]] = None) -> str:
    """Canonicalize a URL for dedup.

    - Lowercase scheme + hostname, drop a leading `www.`
    - Remove fragments and trailing slashes
    - Strip common tracking query parameters, sort the rest
    """
    if not url:
        return ""
    strip = set(strip_params) if strip_params is not None else set(DEFAULT_STRIP_QUERY_PARAMS)
    p = urlparse(url.strip())
    scheme = (p.scheme or "https").lower()
    if scheme == "http":
        scheme = "https"
    netloc = (p.netloc or "").lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    path = (p.path or "").rstrip("/")

    kept = []
    for k, v in parse_qsl(p.query, keep_blank_values=True):
        if k.lower() in strip:
            continue
        kept.append((k, v))
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    query = urlencode(kept, doseq=True)

    return urlunparse((scheme, netloc, path, "", query, ""))


def domain_of(url: Optional[str]) -> Optional[str]:
    try:
        host = (urlparse(url or "").netloc or "").lower().strip()
    except ValueError:
        return None
    if host.startswith("www."):
        host = host[4:]
    return host or None


def is_http_url(url: Optional[str]) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        p = urlparse(url.strip())
    except ValueError:
        return False
    return p.scheme in ("http", "https") and "." in (p.netloc or "")


def _matches_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_reputable(url: Optional[str]) -> bool:
    host = domain_of(url) or ""
    return any(_matches_domain(host, d) for d in REPUTABLE_DOMAINS)


def extract_urls(text: Optional[str]) -> List[str]:
    """All http(s) URLs in `text`, in order of appearance, without duplicates."""
    out: List[str] = []
    for m in _URL_RE.finditer(text or ""):
        url = m.group(0).rstrip(_TRAILING_PUNCT)
        if is_http_url(url) and url not in out:
            out.append(url)
    return out


def recover_source_url(text: Optional[str]) -> Optional[str]:
    """Best URL mentioned in raw section text: first reputable one, else the first one."""
    urls = extract_urls(text)
    if not urls:
        return None
    for url in urls:
        if is_reputable(url):
            return url
    return urls[0]


def source_name_for_url(url: Optional[str]) -> Optional[str]:
    host = domain_of(url)
    if not host:
        return None
    for domain, name in DOMAIN_SOURCE_NAMES.items():
        if _matches_domain(host, domain):
            return name
    return None
