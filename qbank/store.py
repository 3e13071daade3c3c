"""
SQLite Record Store
===================
Persistent storage for question records.

Each record is kept as one JSON document plus a few summary columns, so
the store can serve both a partial listing (id, kind, subject, question
text) and full records for duplicate confirmation. No in-memory caching;
callers that want one wrap `fetch_full_records_by_ids` in a CachedFetcher.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .models import QuestionRecord, dump_records, load_records

logger = logging.getLogger(__name__)

# Default database path: current working directory
_DEFAULT_DB_PATH = str(Path.cwd() / "qbank.sqlite")


def get_db_path() -> str:
    """Return the configured database path."""
    return os.environ.get("QBANK_DB_PATH", _DEFAULT_DB_PATH)


@contextmanager
def get_connection(db_path: str = None):
    """
    Context manager for database connections.
    Ensures proper commit/rollback and connection cleanup.
    """
    db_path = db_path or get_db_path()
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str = None):
    """
    Initialize the database schema.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    db_path = db_path or get_db_path()
    logger.info(f"Initializing database at: {db_path}")

    with get_connection(db_path) as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                subject TEXT DEFAULT '',
                question_text TEXT DEFAULT '',
                data TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_records_kind_subject
                ON records(kind, subject);
        """)

    logger.info("Database schema initialized successfully")


# ─── Record CRUD ──────────────────────────────────────────────────────────────


def insert_records(
    records: list[QuestionRecord], db_path: str = None
) -> list[str]:
    """
    Insert or replace records. Records without an id are assigned one.
    Returns the ids in input order.
    """
    ids: list[str] = []
    with get_connection(db_path) as conn:
        for record in records:
            if not record.id:
                record = record.model_copy(update={"id": uuid.uuid4().hex})
            data = dump_records([record])[0]
            conn.execute(
                """INSERT OR REPLACE INTO records
                   (id, kind, subject, question_text, data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.kind,
                    record.subject,
                    record.body_text,
                    json.dumps(data, ensure_ascii=False),
                ),
            )
            ids.append(record.id)

    logger.info(f"Stored {len(ids)} records")
    return ids


def list_summaries(
    kind: Optional[str] = None, db_path: str = None
) -> list[dict]:
    """Partial view of stored records: id, kind, subject, question_text."""
    query = "SELECT id, kind, subject, question_text FROM records"
    params: tuple = ()
    if kind:
        query += " WHERE kind = ?"
        params = (kind,)
    query += " ORDER BY created_at, rowid"

    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]


def list_records(kind: Optional[str] = None, db_path: str = None) -> list[QuestionRecord]:
    """All stored records as typed models, in insertion order."""
    query = "SELECT data FROM records"
    params: tuple = ()
    if kind:
        query += " WHERE kind = ?"
        params = (kind,)
    query += " ORDER BY created_at, rowid"

    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return load_records([json.loads(r["data"]) for r in rows])


def fetch_full_records_by_ids(
    ids: list[str], db_path: str = None
) -> list[QuestionRecord]:
    """Full records for `ids`. Unknown ids are simply absent from the result."""
    if not ids:
        return []

    placeholders = ", ".join("?" for _ in ids)
    with get_connection(db_path) as conn:
        rows = conn.execute(
            f"SELECT id, data FROM records WHERE id IN ({placeholders})",
            list(ids),
        ).fetchall()

    by_id = {r["id"]: json.loads(r["data"]) for r in rows}
    found = [by_id[i] for i in ids if i in by_id]
    return load_records(found)


def delete_records(ids: list[str], db_path: str = None) -> int:
    """Delete records by id. Returns the number of rows removed."""
    if not ids:
        return 0
    placeholders = ", ".join("?" for _ in ids)
    with get_connection(db_path) as conn:
        cursor = conn.execute(
            f"DELETE FROM records WHERE id IN ({placeholders})", list(ids)
        )
        return cursor.rowcount
