"""Environment-driven configuration for the ingestion worker."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import List

from dealwatch.search.orchestrator import DEFAULT_CATEGORY_HINTS

logger = logging.getLogger(__name__)

DEFAULT_PG_DSN = "dbname=dealwatch user=dealwatch password=dealwatch host=localhost port=5432"


@dataclass
class Config:
    """Configuration with validation"""
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Database settings
    pg_dsn: str = DEFAULT_PG_DSN

    # API settings
    request_timeout: int = 30       # seconds
    search_delay_seconds: float = 1.0
    llm_delay_seconds: float = 0.15
    openai_rate_limit: int = 60     # requests per minute

    # Dedup / persistence
    sweep_window_days: int = 7
    sweep_max_articles: int = 200
    semantic_max_comparisons: int = 20
    persist_batch_size: int = 4

    category_hints: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORY_HINTS))

    # Scheduling
    schedule_time: str = "12:00"
    schedule_sweep_hours: int = 6

    @classmethod
    def from_env(cls, *, require_api_keys: bool = True) -> 'Config':
        """Load and validate configuration from environment variables"""
        hints = [h.strip() for h in os.getenv('CATEGORY_HINTS', '').split(',') if h.strip()]
        config = cls(
            perplexity_api_key=os.getenv('PERPLEXITY_API_KEY', ''),
            perplexity_model=os.getenv('PERPLEXITY_MODEL', 'sonar'),
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),

            pg_dsn=os.getenv('PG_DSN', DEFAULT_PG_DSN),

            request_timeout=int(os.getenv('REQUEST_TIMEOUT', '30')),
            search_delay_seconds=float(os.getenv('SEARCH_DELAY_SECONDS', '1.0')),
            llm_delay_seconds=float(os.getenv('LLM_DELAY_SECONDS', '0.15')),
            openai_rate_limit=int(os.getenv('OPENAI_RATE_LIMIT', '60')),

            sweep_window_days=int(os.getenv('SWEEP_WINDOW_DAYS', '7')),
            sweep_max_articles=int(os.getenv('SWEEP_MAX_ARTICLES', '200')),
            semantic_max_comparisons=int(os.getenv('SEMANTIC_MAX_COMPARISONS', '20')),
            persist_batch_size=int(os.getenv('PERSIST_BATCH_SIZE', '4')),

            category_hints=hints or list(DEFAULT_CATEGORY_HINTS),

            schedule_time=os.getenv('SCHEDULE_TIME', '12:00').strip(),
            schedule_sweep_hours=int(os.getenv('SCHEDULE_SWEEP_HOURS', '6')),
        )

        config._validate(require_api_keys=require_api_keys)
        return config

    def _validate(self, *, require_api_keys: bool = True):
        """Validate configuration values"""
        errors = []

        if require_api_keys:
            if not self.perplexity_api_key:
                errors.append("PERPLEXITY_API_KEY is required")
            elif not self.perplexity_api_key.startswith('pplx-'):
                errors.append("PERPLEXITY_API_KEY appears to be invalid (wrong format)")

            if not self.openai_api_key:
                errors.append("OPENAI_API_KEY is required")
            elif not self.openai_api_key.startswith(('sk-', 'sk-proj-')):
                errors.append("OPENAI_API_KEY appears to be invalid (wrong format)")

        if not self.pg_dsn.strip():
            errors.append("PG_DSN must not be empty")

        if self.request_timeout < 5 or self.request_timeout > 300:
            errors.append("REQUEST_TIMEOUT should be between 5 and 300 seconds")

        if self.search_delay_seconds < 0 or self.llm_delay_seconds < 0:
            errors.append("SEARCH_DELAY_SECONDS and LLM_DELAY_SECONDS must not be negative")

        if self.openai_rate_limit < 1:
            errors.append("OPENAI_RATE_LIMIT must be at least 1")

        if self.sweep_window_days < 1:
            errors.append("SWEEP_WINDOW_DAYS must be at least 1")

        if self.sweep_max_articles < 2 or self.sweep_max_articles > 1000:
            errors.append("SWEEP_MAX_ARTICLES should be between 2 and 1000")

        if self.semantic_max_comparisons < 0:
            errors.append("SEMANTIC_MAX_COMPARISONS must not be negative")

        if self.persist_batch_size < 1 or self.persist_batch_size > 16:
            errors.append("PERSIST_BATCH_SIZE should be between 1 and 16")

        if not re.fullmatch(r"([01]\d|2[0-3]):[0-5]\d", self.schedule_time):
            errors.append("SCHEDULE_TIME should be HH:MM (24h)")

        if self.schedule_sweep_hours < 1:
            errors.append("SCHEDULE_SWEEP_HOURS must be at least 1")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)

        logger.info(f"Configuration validated successfully. Categories: {', '.join(self.category_hints)}")
