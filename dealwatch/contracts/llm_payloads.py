"""JSON contracts for the language-model collaborators.

Three payloads cross the LLM boundary:
- extraction: `{"articles": [...]}` returned for one search section
- summary: `{"title", "summary"}` returned by the low-fidelity fallback path
- adjudication: the "same underlying event?" verdict used by the semantic dedup stage

Anything that fails validation is treated exactly like a failed call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from jsonschema import Draft202012Validator


EXTRACTION_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["articles"],
    "properties": {
        "articles": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "summary"],
                "properties": {
                    "title": {"type": "string"},
                    "summary": {"type": "string"},
                    "category": {"type": ["string", "null"]},
                    "sourceUrl": {"type": ["string", "null"]},
                    "originalSource": {"type": ["string", "null"]},
                },
                "additionalProperties": True,
            },
        },
    },
    "additionalProperties": True,
}

SUMMARY_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["title", "summary"],
    "properties": {
        "title": {"type": "string", "minLength": 1},
        "summary": {"type": "string", "minLength": 1},
        "category": {"type": ["string", "null"]},
        "sourceUrl": {"type": ["string", "null"]},
        "originalSource": {"type": ["string", "null"]},
    },
    "additionalProperties": True,
}

ADJUDICATION_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["isDuplicate", "similarity", "confidence", "reason"],
    "properties": {
        "isDuplicate": {"type": "boolean"},
        "similarity": {"type": "number", "minimum": 0, "maximum": 1},
        "confidence": {"enum": ["low", "medium", "high"]},
        "reason": {"type": "string"},
        "recommendation": {"enum": ["keep_first", "keep_second", "merge", "keep_both"]},
    },
    "additionalProperties": True,
}


_EXTRACTION_VALIDATOR = Draft202012Validator(EXTRACTION_SCHEMA)
_SUMMARY_VALIDATOR = Draft202012Validator(SUMMARY_SCHEMA)
_ADJUDICATION_VALIDATOR = Draft202012Validator(ADJUDICATION_SCHEMA)


def _errors(validator: Draft202012Validator, payload: Any) -> List[str]:
    errors = []
    for e in sorted(validator.iter_errors(payload), key=lambda x: list(x.path)):
        path = ".".join(str(p) for p in e.path) if e.path else "<root>"
        errors.append(f"{path}: {e.message}")
    return errors


def validate_extraction(payload: Any) -> List[str]:
    """Return a list of human-readable validation errors (empty means valid)."""
    return _errors(_EXTRACTION_VALIDATOR, payload)


def validate_summary(payload: Any) -> List[str]:
    return _errors(_SUMMARY_VALIDATOR, payload)


def validate_adjudication(payload: Any) -> List[str]:
    return _errors(_ADJUDICATION_VALIDATOR, payload)


@dataclass(frozen=True)
class SemanticVerdict:
    """Normalized adjudication payload."""

    is_duplicate: bool
    similarity: float
    confidence: str
    reason: str
    recommendation: str = "keep_both"


def parse_verdict(payload: Dict[str, Any]) -> SemanticVerdict:
    """Build a verdict from a payload that already passed `validate_adjudication`."""
    return SemanticVerdict(
        is_duplicate=bool(payload["isDuplicate"]),
        similarity=float(payload["similarity"]),
        confidence=str(payload["confidence"]),
        reason=str(payload.get("reason") or "").strip(),
        recommendation=str(payload.get("recommendation") or "keep_both"),
    )
