"""Exception taxonomy for the ingestion pipeline."""

from __future__ import annotations


class DealwatchError(Exception):
    """Base class for pipeline errors."""


class CollaboratorError(DealwatchError):
    """Search, extraction or adjudication call failed or timed out."""


class ParseError(CollaboratorError):
    """A collaborator answered, but the structured payload was malformed."""


class PersistenceError(DealwatchError):
    """Store read/write failed."""


class DuplicateAnalysisError(DealwatchError):
    """A single pair comparison could not be completed."""


class ConfigurationError(DealwatchError):
    """A run was requested without the collaborators it needs."""
