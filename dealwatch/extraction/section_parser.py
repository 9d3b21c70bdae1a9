"""Split a raw search blob into labeled sections.

Heuristics, in priority order:
1. bullet markers followed by a `Label:` pattern
2. numbered list items
3. blank-line delimited blocks
4. the whole text as one section
"""

from __future__ import annotations

import re
from typing import List

from dealwatch.ingestion.article_types import SearchSection
from dealwatch.search.orchestrator import NO_CONTENT


MIN_SECTION_CHARS = 100
MIN_BLOCK_CHARS = 200
MAX_LABEL_CHARS = 80
GENERIC_LABEL = "Private Credit News"

_MARKER_LINE_RE = re.compile(r"^\s*===.*===\s*$", re.MULTILINE)
_BULLET_LABEL_RE = re.compile(r"(?:^|\n)[ \t]*(?:[•▪*]|-(?=\s))(?![ \t]*https?:)[ \t]*(?=[^\n:•]{1,%d}:)" % MAX_LABEL_CHARS)
_NUMBERED_RE = re.compile(r"(?:^|\n)[ \t]*\d{1,2}[.)][ \t]+")
_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n\s*")


def _clean_label(label: str) -> str:
    label = re.sub(r"[*_#`]", "", label).strip()
    return label.strip(" :-") or GENERIC_LABEL


def _by_bullets(text: str) -> List[SearchSection]:
    parts = _BULLET_LABEL_RE.split(text)
    sections: List[SearchSection] = []
    # parts[0] is whatever precedes the first bullet; it has no label.
    for i, part in enumerate(parts[1:], start=1):
        body = part.strip()
        if len(body) < MIN_SECTION_CHARS:
            continue
        label, _, _ = body.partition(":")
        category = _clean_label(label) if len(label) <= MAX_LABEL_CHARS else f"Section {i}"
        sections.append(SearchSection(category=category, content=body))
    return sections


def _by_numbers(text: str) -> List[SearchSection]:
    parts = _NUMBERED_RE.split(text)
    sections: List[SearchSection] = []
    for i, part in enumerate(parts[1:], start=1):
        body = part.strip()
        if len(body) >= MIN_SECTION_CHARS:
            sections.append(SearchSection(category=f"Deal Activity {i}", content=body))
    return sections


def _by_blocks(text: str) -> List[SearchSection]:
    blocks = [b.strip() for b in _BLANK_LINE_RE.split(text) if len(b.strip()) > MIN_BLOCK_CHARS]
    return [SearchSection(category=f"Market News {i}", content=b) for i, b in enumerate(blocks, start=1)]


def parse(raw_text: str) -> List[SearchSection]:
    """Labeled sections of `raw_text`; `[]` means nothing worth extracting."""
    if not raw_text or raw_text == NO_CONTENT:
        return []
    text = _MARKER_LINE_RE.sub("", raw_text.replace("\r\n", "\n")).strip()
    if not text:
        return []

    sections = _by_bullets(text)
    if len(sections) <= 1:
        numbered = _by_numbers(text)
        if len(numbered) > len(sections):
            sections = numbered
    if not sections:
        sections = _by_blocks(text)
    if not sections and len(text) >= MIN_SECTION_CHARS:
        sections = [SearchSection(category=GENERIC_LABEL, content=text)]
    return sections
