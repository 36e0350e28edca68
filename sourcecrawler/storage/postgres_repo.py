"""Postgres implementation of the source repository.

Plain psycopg + SQL. Every call opens its own short-lived connection so the
repository can be shared by the worker threads.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sourcecrawler.ingestion.errors import InvalidSettings, RepositoryError
from sourcecrawler.ingestion.post_types import EPOCH, NormalizedPost, RunStats, Source, SourceSettings, as_utc
from sourcecrawler.ingestion.url_utils import url_hash

logger = logging.getLogger(__name__)

_SOURCE_COLUMNS = """
    id, type, settings, last_post_date, is_locked, is_enabled,
    last_success_count, last_error_count, last_success_at, last_error_at
"""


def _parse_settings(source_id: Any, raw: Any) -> SourceSettings:
    try:
        doc = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if doc is not None and not isinstance(doc, dict):
            raise ValueError(f"settings must be an object, got {type(doc).__name__}")
        return SourceSettings.from_dict(doc)
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidSettings(f"source {source_id} has invalid settings: {e}") from e


def _row_to_source(row: Dict[str, Any]) -> Source:
    return Source(
        id=int(row["id"]),
        type=row.get("type"),
        settings=_parse_settings(row["id"], row.get("settings")),
        last_post_date=as_utc(row.get("last_post_date")) or EPOCH,
        is_locked=bool(row.get("is_locked")),
        is_enabled=bool(row.get("is_enabled", True)),
        last_success_count=int(row.get("last_success_count") or 0),
        last_error_count=int(row.get("last_error_count") or 0),
        last_success_at=as_utc(row.get("last_success_at")),
        last_error_at=as_utc(row.get("last_error_at")),
    )


class PostgresSourceRepo:
    def __init__(self, pg_dsn: str):
        self.pg_dsn = pg_dsn

    @retry(
        reraise=True,
        retry=retry_if_exception_type(psycopg.OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=8),
    )
    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self.pg_dsn, autocommit=True, row_factory=dict_row)

    def _execute(self, sql: str, params: Any = None) -> int:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return cur.rowcount
        except psycopg.Error as e:
            raise RepositoryError(str(e)) from e

    def _fetch(self, sql: str, params: Any = None) -> List[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    return list(cur.fetchall())
        except psycopg.Error as e:
            raise RepositoryError(str(e)) from e

    # --- Sources ---
    def list_unlocked_sources(self, only_enabled: bool = True) -> List[Source]:
        where = "is_locked = FALSE"
        if only_enabled:
            where += " AND is_enabled = TRUE"
        rows = self._fetch(f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE {where} ORDER BY id")
        sources = []
        for row in rows:
            try:
                sources.append(_row_to_source(row))
            except InvalidSettings as e:
                logger.error("skipping source id=%s: %s", row.get("id"), e)
        return sources

    def get_source(self, source_id: int) -> Optional[Source]:
        rows = self._fetch(f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = %s", (source_id,))
        return _row_to_source(rows[0]) if rows else None

    def acquire_lock(self, source_id: int) -> bool:
        updated = self._execute(
            """
            UPDATE sources
            SET is_locked = TRUE, locked_at = now(), updated_at = now()
            WHERE id = %s AND is_locked = FALSE
            """,
            (source_id,),
        )
        return updated == 1

    def release_lock(self, source_id: int) -> None:
        self._execute(
            "UPDATE sources SET is_locked = FALSE, locked_at = NULL, updated_at = now() WHERE id = %s",
            (source_id,),
        )

    def set_watermark(self, source_id: int, last_post_date: datetime) -> None:
        # GREATEST keeps the watermark monotonic even if runs finish out of order
        self._execute(
            """
            UPDATE sources
            SET last_post_date = GREATEST(COALESCE(last_post_date, %s), %s), updated_at = now()
            WHERE id = %s
            """,
            (EPOCH, last_post_date, source_id),
        )

    def record_success(self, source_id: int, posts_processed: int) -> None:
        self._execute(
            """
            UPDATE sources
            SET last_success_count = last_success_count + 1, last_success_at = now(), updated_at = now()
            WHERE id = %s
            """,
            (source_id,),
        )

    def record_error(self, source_id: int, message: str) -> None:
        try:
            with self._connect() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(
                            """
                            UPDATE sources
                            SET last_error_count = last_error_count + 1, last_error_at = now(), updated_at = now()
                            WHERE id = %s
                            """,
                            (source_id,),
                        )
                        cur.execute(
                            "INSERT INTO source_errors (source_id, error) VALUES (%s, %s)",
                            (source_id, message),
                        )
        except psycopg.Error as e:
            raise RepositoryError(str(e)) from e

    # --- Posts ---
    def insert_post(self, post: NormalizedPost) -> bool:
        table = "posts" if post.is_approved else "preview_posts"
        rows = self._fetch(
            f"""
            INSERT INTO {table} (
              source_id, url, url_hash, title, description, content,
              preview_image_url, inline_image_url, published_at
            )
            VALUES (
              %(source_id)s, %(url)s, %(url_hash)s, %(title)s, %(description)s, %(content)s,
              %(preview_image_url)s, %(inline_image_url)s, %(published_at)s
            )
            ON CONFLICT (source_id, url_hash) DO NOTHING
            RETURNING id
            """,
            {
                "source_id": post.source_id,
                "url": post.url,
                "url_hash": url_hash(post.url),
                "title": post.title,
                "description": post.description,
                "content": post.content,
                "preview_image_url": post.preview_image_url,
                "inline_image_url": post.inline_image_url,
                "published_at": post.published_at,
            },
        )
        if rows:
            logger.info("saved: %s for source id=%s, post id=%s, pubdate=%s", post.title, post.source_id, rows[0]["id"], post.published_at)
            return True
        logger.debug("duplicate url %s for source id=%s", post.url, post.source_id)
        return False

    def insert_stats(self, stats: RunStats) -> None:
        self._execute(
            """
            INSERT INTO source_run_stats (source_id, begin_at, end_at, item_count, success, error)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (stats.source_id, stats.begin, stats.end, stats.posts_processed, stats.is_success, stats.error),
        )
