from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS person (
    id            TEXT PRIMARY KEY,
    display_name  TEXT,
    gender        TEXT CHECK (gender IS NULL OR gender IN ('male', 'female', 'other', 'unknown')),
    birth_date    DATE,
    death_date    DATE
);

CREATE TABLE IF NOT EXISTS relationship (
    id                      TEXT PRIMARY KEY,
    person1_id              TEXT NOT NULL REFERENCES person (id),
    person2_id              TEXT NOT NULL REFERENCES person (id),
    relationship_type       TEXT NOT NULL CHECK (relationship_type IN ('parent', 'spouse', 'sibling')),
    relationship_qualifier  TEXT,
    start_date              DATE,
    end_date                DATE,
    notes                   TEXT,
    created_at              TIMESTAMPTZ NOT NULL DEFAULT now(),
    CHECK (person1_id <> person2_id),
    CHECK (start_date IS NULL OR end_date IS NULL OR start_date <= end_date)
);

CREATE INDEX IF NOT EXISTS idx_relationship_person1 ON relationship (person1_id, relationship_type);
CREATE INDEX IF NOT EXISTS idx_relationship_person2 ON relationship (person2_id, relationship_type);
""".strip()


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


@contextmanager
def db_conn(schema: str | None = None, *, autocommit: bool = True) -> Iterator[psycopg.Connection]:
    """Yield a database connection with the correct ``search_path``.

    - If *schema* is provided, sets ``search_path`` to that schema plus
      ``public`` (one schema per family tree).
    - Connections default to autocommit so ``PostgresStore.transaction()``
      opens a real transaction rather than a savepoint.
    """
    with psycopg.connect(get_database_url(), autocommit=autocommit) as conn:
        if schema:
            conn.execute(f'SET search_path TO "{schema}", public')
        yield conn


def ensure_schema(conn: psycopg.Connection) -> None:
    conn.execute(SCHEMA_SQL)
