"""Postgres schema management for dealwatch.

Schema creation is idempotent (CREATE IF NOT EXISTS) so every worker start can call it.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


SCHEMA_STATEMENTS: list[str] = [
    # Deal articles. `date` is the fetch-target date of the run that stored the row.
    """
    CREATE TABLE IF NOT EXISTS deals (
      id BIGSERIAL PRIMARY KEY,
      date DATE NOT NULL,
      title TEXT NOT NULL,
      summary TEXT NOT NULL,
      content TEXT NOT NULL DEFAULT '',
      source_name TEXT NOT NULL DEFAULT 'Financial News',
      source_url TEXT,
      category TEXT NOT NULL DEFAULT 'Market News',
      upvotes INTEGER NOT NULL DEFAULT 0,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_deals_date ON deals (date DESC);",
    "CREATE INDEX IF NOT EXISTS idx_deals_created_at ON deals (created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_deals_source_url ON deals (source_url);",
    # One row per ingestion run or standalone sweep.
    """
    CREATE TABLE IF NOT EXISTS ingestion_runs (
      id BIGSERIAL PRIMARY KEY,
      kind TEXT NOT NULL DEFAULT 'ingest', -- ingest|sweep
      target_date DATE,
      status TEXT NOT NULL, -- ok|partial|no_content|rejected|failed
      started_at TIMESTAMPTZ NOT NULL,
      finished_at TIMESTAMPTZ,
      sections INTEGER NOT NULL DEFAULT 0,
      candidates INTEGER NOT NULL DEFAULT 0,
      saved INTEGER NOT NULL DEFAULT 0,
      patched INTEGER NOT NULL DEFAULT 0,
      skipped INTEGER NOT NULL DEFAULT 0,
      errors INTEGER NOT NULL DEFAULT 0,
      sweep_deleted INTEGER NOT NULL DEFAULT 0,
      message TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_ingestion_runs_started ON ingestion_runs (started_at DESC);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
