"""
SQLite implementation of the RepoStore capability.

One connection per call, one transaction per public method. Writes from
concurrent sync workers are serialized by an instance lock on top of
SQLite's own busy timeout; reads run unlocked against WAL snapshots.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from forksync.core.errors import StoreError
from forksync.core.models import (
    DiscoverySource,
    HistoryRecord,
    Host,
    HostKind,
    MergeStrategy,
    RateLimitInfo,
    Repo,
    SyncOutcome,
    SyncState,
    Visibility,
    utcnow,
)
from forksync.core.store.base import RepoFilter, Upsert
from forksync.core.store.connection import execute_one, execute_query, get_connection, init_db

logger = logging.getLogger(__name__)

# Repo columns compared to decide whether an upsert changed anything
_REPO_CONTENT_FIELDS = (
    "clone_url",
    "local_path",
    "is_fork",
    "parent_repo_id",
    "parent_full_name",
    "parent_clone_url",
    "default_branch",
    "visibility",
)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteRepoStore:
    """
    RepoStore backed by a single SQLite file.

    Example:
        >>> store = SqliteRepoStore(Path("~/.local/share/forksync/forksync.db").expanduser())
        >>> host = store.add_host(Host.create("gh", HostKind.GITHUB))
        >>> store.list_repos(RepoFilter(host_id=host.id, forks_only=True))
        []
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        try:
            init_db(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open state database {self.db_path}: {e}") from e

    @contextmanager
    def _transaction(self, *, write: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            if write:
                with self._write_lock, get_connection(self.db_path) as conn:
                    yield conn
            else:
                with get_connection(self.db_path) as conn:
                    yield conn
        except sqlite3.Error as e:
            logger.warning("Store operation failed: %s", e)
            raise StoreError(f"State database error: {e}", db_path=str(self.db_path)) from e

    # ==========================================================================
    # Hosts
    # ==========================================================================

    @staticmethod
    def _row_to_host(row: dict[str, Any]) -> Host:
        rate_limit = None
        if row["rate_limit"]:
            rate_limit = RateLimitInfo.model_validate_json(row["rate_limit"])
        return Host(
            id=row["id"],
            label=row["label"],
            kind=HostKind(row["kind"]),
            api_url=row["api_url"],
            domain=row["domain"],
            username=row["username"],
            credential_key=row["credential_key"],
            rate_limit=rate_limit,
            created_at=_parse_ts(row["created_at"]),
        )

    def add_host(self, host: Host) -> Host:
        """
        Insert a new host.

        Raises:
            StoreError: If the label is already taken
        """
        with self._transaction(write=True) as conn:
            cursor = conn.execute(
                """
                INSERT INTO hosts (label, kind, api_url, domain, username,
                                   credential_key, rate_limit, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    host.label,
                    host.kind.value,
                    host.api_url,
                    host.domain,
                    host.username,
                    host.credential_key,
                    host.rate_limit.model_dump_json() if host.rate_limit else None,
                    _ts(host.created_at),
                ),
            )
            return host.model_copy(update={"id": cursor.lastrowid})

    def get_host(self, host_id: int) -> Host | None:
        with self._transaction() as conn:
            row = execute_one(conn, "SELECT * FROM hosts WHERE id = ?", (host_id,))
        return self._row_to_host(row) if row else None

    def get_host_by_label(self, label: str) -> Host | None:
        with self._transaction() as conn:
            row = execute_one(conn, "SELECT * FROM hosts WHERE label = ?", (label,))
        return self._row_to_host(row) if row else None

    def list_hosts(self) -> list[Host]:
        with self._transaction() as conn:
            rows = execute_query(conn, "SELECT * FROM hosts ORDER BY label")
        return [self._row_to_host(r) for r in rows]

    def remove_host(self, label: str) -> bool:
        """Delete a host and (by cascade) its repos and sync state. History stays."""
        with self._transaction(write=True) as conn:
            cursor = conn.execute("DELETE FROM hosts WHERE label = ?", (label,))
            return cursor.rowcount > 0

    def update_host_rate_limit(self, host_id: int, info: RateLimitInfo) -> None:
        with self._transaction(write=True) as conn:
            conn.execute(
                "UPDATE hosts SET rate_limit = ? WHERE id = ?",
                (info.model_dump_json(), host_id),
            )

    # ==========================================================================
    # Repos
    # ==========================================================================

    @staticmethod
    def _row_to_repo(row: dict[str, Any]) -> Repo:
        return Repo(
            id=row["id"],
            host_id=row["host_id"],
            owner=row["owner"],
            name=row["name"],
            clone_url=row["clone_url"],
            local_path=Path(row["local_path"]) if row["local_path"] else None,
            is_fork=bool(row["is_fork"]),
            parent_repo_id=row["parent_repo_id"],
            parent_full_name=row["parent_full_name"],
            parent_clone_url=row["parent_clone_url"],
            default_branch=row["default_branch"],
            visibility=Visibility(row["visibility"]),
            discovery_source=DiscoverySource(row["discovery_source"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _repo_content(repo: Repo) -> dict[str, Any]:
        return {
            "clone_url": repo.clone_url,
            "local_path": str(repo.local_path) if repo.local_path else None,
            "is_fork": int(repo.is_fork),
            "parent_repo_id": repo.parent_repo_id,
            "parent_full_name": repo.parent_full_name,
            "parent_clone_url": repo.parent_clone_url,
            "default_branch": repo.default_branch,
            "visibility": repo.visibility.value,
        }

    def upsert_repo(self, repo: Repo) -> tuple[Repo, Upsert]:
        """
        Insert or update a repo by its (host_id, owner, name) identity.

        When nothing but timestamps would change, only ``updated_at`` is
        refreshed and the result is ``Upsert.UNCHANGED``. The id, created_at
        and discovery_source of an existing record are preserved.
        """
        content = self._repo_content(repo)
        now = _ts(utcnow())

        with self._transaction(write=True) as conn:
            existing = execute_one(
                conn,
                "SELECT * FROM repos WHERE host_id = ? AND owner = ? AND name = ?",
                (repo.host_id, repo.owner, repo.name),
            )

            if existing is None:
                cursor = conn.execute(
                    f"""
                    INSERT INTO repos (host_id, owner, name, {", ".join(_REPO_CONTENT_FIELDS)},
                                       discovery_source, created_at, updated_at)
                    VALUES (?, ?, ?, {", ".join("?" for _ in _REPO_CONTENT_FIELDS)}, ?, ?, ?)
                    """,
                    (
                        repo.host_id,
                        repo.owner,
                        repo.name,
                        *(content[f] for f in _REPO_CONTENT_FIELDS),
                        repo.discovery_source.value,
                        now,
                        now,
                    ),
                )
                repo_id = cursor.lastrowid
                outcome = Upsert.CREATED
            else:
                repo_id = existing["id"]
                if all(existing[f] == content[f] for f in _REPO_CONTENT_FIELDS):
                    conn.execute("UPDATE repos SET updated_at = ? WHERE id = ?", (now, repo_id))
                    outcome = Upsert.UNCHANGED
                else:
                    assignments = ", ".join(f"{f} = ?" for f in _REPO_CONTENT_FIELDS)
                    conn.execute(
                        f"UPDATE repos SET {assignments}, updated_at = ? WHERE id = ?",
                        (*(content[f] for f in _REPO_CONTENT_FIELDS), now, repo_id),
                    )
                    outcome = Upsert.UPDATED

            row = execute_one(conn, "SELECT * FROM repos WHERE id = ?", (repo_id,))

        assert row is not None
        return self._row_to_repo(row), outcome

    def get_repo(self, repo_id: int) -> Repo | None:
        with self._transaction() as conn:
            row = execute_one(conn, "SELECT * FROM repos WHERE id = ?", (repo_id,))
        return self._row_to_repo(row) if row else None

    def find_repo(self, host_id: int, owner: str, name: str) -> Repo | None:
        with self._transaction() as conn:
            row = execute_one(
                conn,
                "SELECT * FROM repos WHERE host_id = ? AND owner = ? AND name = ?",
                (host_id, owner, name),
            )
        return self._row_to_repo(row) if row else None

    def list_repos(self, repo_filter: RepoFilter | None = None) -> list[Repo]:
        """List repos ordered by (host_id, owner, name), case-insensitively."""
        repo_filter = repo_filter or RepoFilter()
        clauses: list[str] = []
        params: list[Any] = []

        if repo_filter.host_id is not None:
            clauses.append("host_id = ?")
            params.append(repo_filter.host_id)
        if repo_filter.forks_only:
            clauses.append("is_fork = 1")
        if repo_filter.with_local_path is True:
            clauses.append("local_path IS NOT NULL")
        elif repo_filter.with_local_path is False:
            clauses.append("local_path IS NULL")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._transaction() as conn:
            rows = execute_query(
                conn, f"SELECT * FROM repos {where} ORDER BY host_id, owner, name", tuple(params)
            )

        repos = [self._row_to_repo(r) for r in rows]
        return [r for r in repos if repo_filter.matches_name(r.full_name)]

    # ==========================================================================
    # Sync state
    # ==========================================================================

    @staticmethod
    def _row_to_state(row: dict[str, Any]) -> SyncState:
        return SyncState(
            repo_id=row["repo_id"],
            ahead=row["ahead"],
            behind=row["behind"],
            strategy=MergeStrategy(row["strategy"]) if row["strategy"] else None,
            last_outcome=SyncOutcome(row["last_outcome"]) if row["last_outcome"] else None,
            last_synced_at=_parse_ts(row["last_synced_at"]),
            last_error=row["last_error"],
        )

    def get_sync_state(self, repo_id: int) -> SyncState | None:
        with self._transaction() as conn:
            row = execute_one(conn, "SELECT * FROM sync_state WHERE repo_id = ?", (repo_id,))
        return self._row_to_state(row) if row else None

    def list_sync_states(self) -> list[SyncState]:
        with self._transaction() as conn:
            rows = execute_query(conn, "SELECT * FROM sync_state ORDER BY repo_id")
        return [self._row_to_state(r) for r in rows]

    @staticmethod
    def _write_state(conn: sqlite3.Connection, state: SyncState, *, with_strategy: bool) -> None:
        # status is stored for querying only; it is always derived from the model
        columns = ["ahead", "behind", "status", "last_outcome", "last_synced_at", "last_error"]
        values: list[Any] = [
            state.ahead,
            state.behind,
            state.status.value,
            state.last_outcome.value if state.last_outcome else None,
            _ts(state.last_synced_at),
            state.last_error,
        ]
        if with_strategy:
            columns.append("strategy")
            values.append(state.strategy.value if state.strategy else None)

        updates = ", ".join(f"{c} = excluded.{c}" for c in columns)
        conn.execute(
            f"""
            INSERT INTO sync_state (repo_id, {", ".join(columns)})
            VALUES (?, {", ".join("?" for _ in columns)})
            ON CONFLICT(repo_id) DO UPDATE SET {updates}
            """,
            (state.repo_id, *values),
        )

    def update_sync_state(self, state: SyncState) -> None:
        with self._transaction(write=True) as conn:
            self._write_state(conn, state, with_strategy=True)

    def set_repo_strategy(self, repo_id: int, strategy: MergeStrategy | None) -> None:
        with self._transaction(write=True) as conn:
            conn.execute(
                """
                INSERT INTO sync_state (repo_id, strategy) VALUES (?, ?)
                ON CONFLICT(repo_id) DO UPDATE SET strategy = excluded.strategy
                """,
                (repo_id, strategy.value if strategy else None),
            )

    # ==========================================================================
    # History
    # ==========================================================================

    @staticmethod
    def _row_to_history(row: dict[str, Any]) -> HistoryRecord:
        return HistoryRecord(
            seq=row["seq"],
            repo_id=row["repo_id"],
            started_at=_parse_ts(row["started_at"]),
            ended_at=_parse_ts(row["ended_at"]),
            strategy=row["strategy"],
            dry_run=bool(row["dry_run"]),
            phase=row["phase"],
            state=row["state"],
            outcome=row["outcome"],
            error_kind=row["error_kind"],
            before_sha=row["before_sha"],
            after_sha=row["after_sha"],
            ahead=row["ahead"],
            behind=row["behind"],
            message=row["message"],
        )

    @staticmethod
    def _insert_history(conn: sqlite3.Connection, record: HistoryRecord) -> HistoryRecord:
        cursor = conn.execute(
            """
            INSERT INTO history (repo_id, started_at, ended_at, strategy, dry_run, phase,
                                 state, outcome, error_kind, before_sha, after_sha,
                                 ahead, behind, message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.repo_id,
                _ts(record.started_at),
                _ts(record.ended_at),
                record.strategy.value,
                int(record.dry_run),
                record.phase.value,
                record.state.value,
                record.outcome.value,
                record.error_kind.value if record.error_kind else None,
                record.before_sha,
                record.after_sha,
                record.ahead,
                record.behind,
                record.message,
            ),
        )
        return record.model_copy(update={"seq": cursor.lastrowid})

    def append_history(self, record: HistoryRecord) -> HistoryRecord:
        with self._transaction(write=True) as conn:
            return self._insert_history(conn, record)

    def query_history(
        self, repo_id: int | None = None, limit: int | None = None
    ) -> list[HistoryRecord]:
        """History newest first, optionally for one repo and capped at ``limit``."""
        query = "SELECT * FROM history"
        params: list[Any] = []
        if repo_id is not None:
            query += " WHERE repo_id = ?"
            params.append(repo_id)
        query += " ORDER BY seq DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = execute_query(conn, query, tuple(params))
        return [self._row_to_history(r) for r in rows]

    def record_sync(self, state: SyncState, record: HistoryRecord) -> HistoryRecord:
        """
        Write a task's SyncState and History entry in one transaction.

        The per-repo configured strategy is left untouched.
        """
        with self._transaction(write=True) as conn:
            self._write_state(conn, state, with_strategy=False)
            return self._insert_history(conn, record)


