"""
SQLite helpers shared by the service stores.

Provides init_db() for a service schema, connection() for ordinary
auto-committing work and transaction() for multi-statement writes that must
land together. Uses WAL mode and parameterized queries throughout.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def init_db(db_path: str, schema: str) -> None:
    """
    Create the database file and run the schema script (CREATE ... IF NOT EXISTS).
    Enables WAL mode for better concurrency.

    >>> import tempfile
    >>> db = tempfile.mktemp(suffix=".db")
    >>> init_db(db, "CREATE TABLE IF NOT EXISTS t (k TEXT PRIMARY KEY);")
    >>> with connection(db) as conn:
    ...     conn.execute("SELECT COUNT(*) FROM t").fetchone()[0]
    0
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with connection(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(schema)


@contextmanager
def connection(db_path: str) -> Iterator[sqlite3.Connection]:
    """SQLite connection that commits on exit and rolls back on error."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Single write transaction taken with BEGIN IMMEDIATE.

    Every statement issued on the yielded connection commits together or not
    at all; concurrent writers queue behind the reserved lock.
    """
    conn = sqlite3.connect(db_path, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
    finally:
        conn.close()
