"""
Database connection management for the forksync store.

Every connection is configured with:
- WAL mode so readers don't block the writer
- Foreign key enforcement
- A busy timeout so concurrent sync workers wait instead of failing
- dict rows: row["column"]

Usage:
    init_db(db_path)
    with get_connection(db_path) as conn:
        rows = execute_query(conn, "SELECT * FROM repos WHERE is_fork = ?", (1,))
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from forksync.core.store.schema import create_schema, needs_migration

BUSY_TIMEOUT_SECONDS = 30.0


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Row factory that returns rows as dictionaries keyed by column name."""
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


def configure_connection(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = dict_factory


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECONDS)
    configure_connection(conn)
    return conn


def init_db(db_path: Path | str, *, force_recreate: bool = False) -> None:
    """
    Initialize the state database.

    Creates the file and parent directories if needed and applies the
    schema when it is missing or older than SCHEMA_VERSION.

    Args:
        db_path: Path to the SQLite database file
        force_recreate: If True, delete an existing database first
    """
    db_path = Path(db_path)

    if force_recreate and db_path.exists():
        db_path.unlink()

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(db_path)
    try:
        if needs_migration(conn):
            create_schema(conn)
    finally:
        conn.close()


@contextmanager
def get_connection(db_path: Path | str) -> Iterator[sqlite3.Connection]:
    """
    Get a database connection as a transactional context manager.

    Commits on normal exit, rolls back if an exception escapes, and
    always closes the connection.
    """
    db_path = Path(db_path)

    if not db_path.exists():
        init_db(db_path)

    conn = _connect(db_path)

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute_query(
    conn: sqlite3.Connection,
    query: str,
    params: tuple[Any, ...] | dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Execute a query and return all rows as dicts."""
    if params is None:
        params = ()
    cursor = conn.execute(query, params)
    return cursor.fetchall()


def execute_one(
    conn: sqlite3.Connection,
    query: str,
    params: tuple[Any, ...] | dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Execute a query and return the first row, or None."""
    if params is None:
        params = ()
    cursor = conn.execute(query, params)
    result = cursor.fetchone()
    return result  # type: ignore[no-any-return]
