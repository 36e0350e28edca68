"""Postgres schema management for the crawler.

Schema creation is idempotent (CREATE IF NOT EXISTS), safe to run at every start.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


_POST_COLUMNS = """
      id BIGSERIAL PRIMARY KEY,
      source_id BIGINT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
      url TEXT NOT NULL,
      url_hash TEXT NOT NULL,
      title TEXT NOT NULL,
      description TEXT,
      content TEXT,
      preview_image_url TEXT,
      inline_image_url TEXT,
      published_at TIMESTAMPTZ,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      UNIQUE (source_id, url_hash)
"""

SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS sources (
      id BIGSERIAL PRIMARY KEY,
      name TEXT,
      type TEXT,
      settings JSONB NOT NULL DEFAULT '{}'::jsonb,
      last_post_date TIMESTAMPTZ,
      is_locked BOOLEAN NOT NULL DEFAULT FALSE,
      is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
      locked_at TIMESTAMPTZ,
      last_success_count INTEGER NOT NULL DEFAULT 0,
      last_error_count INTEGER NOT NULL DEFAULT 0,
      last_success_at TIMESTAMPTZ,
      last_error_at TIMESTAMPTZ,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    f"CREATE TABLE IF NOT EXISTS posts ({_POST_COLUMNS});",
    f"CREATE TABLE IF NOT EXISTS preview_posts ({_POST_COLUMNS});",
    """
    CREATE TABLE IF NOT EXISTS source_run_stats (
      id BIGSERIAL PRIMARY KEY,
      source_id BIGINT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
      begin_at TIMESTAMPTZ NOT NULL,
      end_at TIMESTAMPTZ NOT NULL,
      item_count INTEGER NOT NULL DEFAULT 0,
      success BOOLEAN NOT NULL,
      error TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS source_errors (
      id BIGSERIAL PRIMARY KEY,
      source_id BIGINT REFERENCES sources(id) ON DELETE CASCADE,
      error TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_sources_unlocked ON sources (is_locked, is_enabled);",
    "CREATE INDEX IF NOT EXISTS idx_posts_source_published ON posts (source_id, published_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_preview_posts_source_published ON preview_posts (source_id, published_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_source_run_stats_source ON source_run_stats (source_id, begin_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_source_errors_source ON source_errors (source_id, created_at DESC);",
]


def ensure_postgres_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Create the crawler tables if they are missing."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
