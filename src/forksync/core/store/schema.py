"""
SQLite schema for the forksync state database.

Schema Design:
- hosts: registered hosting accounts (label unique)
- repos: repositories, identity (host_id, owner, name), case-insensitive
- sync_state: one row per fork, keyed by repo id
- history: append-only audit trail, keyed by an auto-incrementing sequence
- schema_info: version tracking for migrations

History rows carry a plain repo_id with no foreign key so removing a host
or repo never deletes audit entries.
"""

import sqlite3

SCHEMA_VERSION = 1

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS hosts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL,
    api_url TEXT NOT NULL,
    domain TEXT NOT NULL,
    username TEXT,
    credential_key TEXT NOT NULL,
    rate_limit TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS repos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    host_id INTEGER NOT NULL REFERENCES hosts(id) ON DELETE CASCADE,
    owner TEXT NOT NULL COLLATE NOCASE,
    name TEXT NOT NULL COLLATE NOCASE,
    clone_url TEXT,
    local_path TEXT,
    is_fork INTEGER NOT NULL DEFAULT 0,
    parent_repo_id INTEGER REFERENCES repos(id) ON DELETE SET NULL,
    parent_full_name TEXT,
    parent_clone_url TEXT,
    default_branch TEXT NOT NULL DEFAULT 'main',
    visibility TEXT NOT NULL DEFAULT 'unknown',
    discovery_source TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (host_id, owner, name)
);

CREATE INDEX IF NOT EXISTS idx_repos_host ON repos(host_id);
CREATE INDEX IF NOT EXISTS idx_repos_fork ON repos(is_fork);

CREATE TABLE IF NOT EXISTS sync_state (
    repo_id INTEGER PRIMARY KEY REFERENCES repos(id) ON DELETE CASCADE,
    ahead INTEGER,
    behind INTEGER,
    strategy TEXT,
    status TEXT NOT NULL DEFAULT 'unknown',
    last_outcome TEXT,
    last_synced_at TEXT,
    last_error TEXT
);

CREATE TABLE IF NOT EXISTS history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_id INTEGER NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT NOT NULL,
    strategy TEXT NOT NULL,
    dry_run INTEGER NOT NULL DEFAULT 0,
    phase TEXT NOT NULL,
    state TEXT NOT NULL,
    outcome TEXT NOT NULL,
    error_kind TEXT,
    before_sha TEXT,
    after_sha TEXT,
    ahead INTEGER,
    behind INTEGER,
    message TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_history_repo ON history(repo_id, seq);

CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create the database schema.

    Idempotent; safe to call on an existing database.
    """
    conn.executescript(SCHEMA_DDL)
    conn.execute(
        "INSERT OR REPLACE INTO schema_info (version, description) VALUES (?, ?)",
        (SCHEMA_VERSION, "hosts, repos, sync_state, history"),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Current schema version, or None if schema_info doesn't exist."""
    try:
        cursor = conn.execute("SELECT MAX(version) AS version FROM schema_info")
        row = cursor.fetchone()
    except sqlite3.OperationalError:
        return None
    if row is None:
        return None
    value = row["version"] if isinstance(row, dict) else row[0]
    return value if value is not None else None


def needs_migration(conn: sqlite3.Connection) -> bool:
    current_version = get_schema_version(conn)
    if current_version is None:
        return True
    return current_version < SCHEMA_VERSION
