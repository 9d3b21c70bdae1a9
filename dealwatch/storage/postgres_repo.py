"""Persistence gateway for deal articles.

`BaseDealStore` is the contract the coordinator and dedup engine talk to;
`PostgresDealStore` implements it with plain psycopg + SQL, one autocommit connection
per operation. Driver errors surface as `PersistenceError`.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional

import psycopg

from dealwatch.dedup.similarity import normalize_title
from dealwatch.errors import PersistenceError
from dealwatch.ingestion.article_types import RunSummary, StoredArticle

# Prefix of the normalized title used to narrow duplicate candidates.
TITLE_PREFIX_CHARS = 24
MIN_TITLE_PREFIX_CHARS = 8


def title_prefix(title: Optional[str]) -> str:
    return normalize_title(title)[:TITLE_PREFIX_CHARS].rstrip()


class BaseDealStore:
    def save(self, article: StoredArticle) -> StoredArticle:
        """Insert `article` and return it with `id` and `created_at` filled in."""
        raise NotImplementedError

    def get_by_date(self, day: date) -> List[StoredArticle]:
        raise NotImplementedError

    def get_all(self, limit: Optional[int] = None) -> List[StoredArticle]:
        raise NotImplementedError

    def get_since(self, since: date, limit: Optional[int] = None) -> List[StoredArticle]:
        """Records dated on or after `since`, newest `created_at` first."""
        raise NotImplementedError

    def find_duplicate_candidates(self, title: str, day: date) -> List[StoredArticle]:
        """Records within one day of `day` whose normalized title shares a prefix with `title`."""
        raise NotImplementedError

    def update_source_attribution(self, article_id: int, source_url: Optional[str], source_name: Optional[str]) -> bool:
        raise NotImplementedError

    def update_date(self, article_id: int, new_date: date) -> bool:
        raise NotImplementedError

    def delete(self, article_id: int) -> bool:
        raise NotImplementedError

    def record_run(self, summary: RunSummary) -> None:
        raise NotImplementedError

    def recent_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        raise NotImplementedError


_DEAL_COLUMNS = "id, date, title, summary, content, source_name, source_url, category, upvotes, created_at"
_NORMALIZED_TITLE_SQL = "btrim(regexp_replace(regexp_replace(lower(title), '[^a-z0-9 ]', ' ', 'g'), '\\s+', ' ', 'g'))"


class PostgresDealStore(BaseDealStore):
    def __init__(self, pg_dsn: str):
        self.pg_dsn = pg_dsn

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        try:
            with psycopg.connect(self.pg_dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    yield cur
        except psycopg.Error as e:
            raise PersistenceError(f"postgres operation failed: {e}") from e

    def save(self, article: StoredArticle) -> StoredArticle:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO deals (date, title, summary, content, source_name, source_url, category, upvotes)
                VALUES (%(date)s, %(title)s, %(summary)s, %(content)s, %(source_name)s, %(source_url)s, %(category)s, %(upvotes)s)
                RETURNING id, created_at
                """,
                {
                    "date": article.date,
                    "title": article.title,
                    "summary": article.summary,
                    "content": article.content or "",
                    "source_name": article.source_name,
                    "source_url": article.source_url,
                    "category": article.category,
                    "upvotes": int(article.upvotes or 0),
                },
            )
            row = cur.fetchone()
        return replace(article, id=int(row[0]), created_at=row[1])

    def get_by_date(self, day: date) -> List[StoredArticle]:
        with self._cursor() as cur:
            cur.execute(f"SELECT {_DEAL_COLUMNS} FROM deals WHERE date = %s ORDER BY created_at DESC, id DESC", (day,))
            rows = cur.fetchall()
        return [self._row_to_article(r) for r in rows]

    def get_all(self, limit: Optional[int] = None) -> List[StoredArticle]:
        sql = f"SELECT {_DEAL_COLUMNS} FROM deals ORDER BY created_at DESC, id DESC"
        params: List[Any] = []
        if limit:
            sql += " LIMIT %s"
            params.append(int(limit))
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_article(r) for r in rows]

    def get_since(self, since: date, limit: Optional[int] = None) -> List[StoredArticle]:
        sql = f"SELECT {_DEAL_COLUMNS} FROM deals WHERE date >= %s ORDER BY created_at DESC, id DESC"
        params: List[Any] = [since]
        if limit:
            sql += " LIMIT %s"
            params.append(int(limit))
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_article(r) for r in rows]

    def find_duplicate_candidates(self, title: str, day: date) -> List[StoredArticle]:
        prefix = title_prefix(title)
        if len(prefix) < MIN_TITLE_PREFIX_CHARS:
            return []
        with self._cursor() as cur:
            cur.execute(
                f"""
                SELECT {_DEAL_COLUMNS} FROM deals
                WHERE date BETWEEN %s AND %s
                  AND {_NORMALIZED_TITLE_SQL} LIKE %s
                ORDER BY created_at DESC, id DESC
                LIMIT 50
                """,
                (day - timedelta(days=1), day + timedelta(days=1), prefix + "%"),
            )
            rows = cur.fetchall()
        return [self._row_to_article(r) for r in rows]

    def update_source_attribution(self, article_id: int, source_url: Optional[str], source_name: Optional[str]) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE deals
                SET source_url = COALESCE(%s, source_url),
                    source_name = COALESCE(%s, source_name)
                WHERE id = %s
                """,
                (source_url, source_name, article_id),
            )
            return cur.rowcount > 0

    def update_date(self, article_id: int, new_date: date) -> bool:
        with self._cursor() as cur:
            cur.execute("UPDATE deals SET date = %s WHERE id = %s", (new_date, article_id))
            return cur.rowcount > 0

    def delete(self, article_id: int) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM deals WHERE id = %s", (article_id,))
            return cur.rowcount > 0

    def record_run(self, summary: RunSummary) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO ingestion_runs (
                  kind, target_date, status, started_at, finished_at, sections, candidates,
                  saved, patched, skipped, errors, sweep_deleted, message
                )
                VALUES (
                  %(kind)s, %(target_date)s, %(status)s, %(started_at)s, %(finished_at)s, %(sections)s, %(candidates)s,
                  %(saved)s, %(patched)s, %(skipped)s, %(errors)s, %(sweep_deleted)s, %(message)s
                )
                """,
                {
                    "kind": summary.kind,
                    "target_date": summary.target_date,
                    "status": summary.status,
                    "started_at": summary.started_at,
                    "finished_at": summary.finished_at,
                    "sections": summary.sections,
                    "candidates": summary.candidates,
                    "saved": summary.saved,
                    "patched": summary.patched,
                    "skipped": summary.skipped,
                    "errors": summary.errors,
                    "sweep_deleted": summary.sweep.deleted if summary.sweep else 0,
                    "message": summary.message or None,
                },
            )

    def recent_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 100))
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT kind, target_date, status, started_at, finished_at, sections, candidates,
                       saved, patched, skipped, errors, sweep_deleted, message
                FROM ingestion_runs
                ORDER BY started_at DESC
                LIMIT %s
                """,
                (limit,),
            )
            rows = cur.fetchall()
        keys = (
            "kind", "target_date", "status", "started_at", "finished_at", "sections", "candidates",
            "saved", "patched", "skipped", "errors", "sweep_deleted", "message",
        )
        return [dict(zip(keys, r)) for r in rows]

    def _row_to_article(self, row) -> StoredArticle:
        return StoredArticle(
            id=int(row[0]),
            date=row[1],
            title=row[2] or "",
            summary=row[3] or "",
            content=row[4] or "",
            source_name=row[5] or "",
            source_url=row[6],
            category=row[7] or "",
            upvotes=int(row[8] or 0),
            created_at=row[9],
        )
