"""credgate.core.database

SQLite storage for credentials, projects, and the edges between them.

Reads are snapshot reads on a per-thread connection (WAL). Writes happen
inside `Database.transaction()`, which takes the write lock up front
(`BEGIN IMMEDIATE`) so multi-row mutations serialize against each other and
never commit half-way.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from credgate.core.exceptions import StoreError, TransactionTimeout

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
-- ============================================================
-- Schema Version Tracking
-- ============================================================
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT DEFAULT (datetime('now'))
);

-- ============================================================
-- Users
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    global_role TEXT NOT NULL CHECK(global_role IN ('owner', 'admin', 'member')),
    created_at TEXT DEFAULT (datetime('now'))
);

-- ============================================================
-- Projects + memberships
-- ============================================================
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    kind TEXT NOT NULL CHECK(kind IN ('personal', 'team')),
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS project_relations (
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('personalOwner', 'admin', 'editor', 'viewer')),
    created_at TEXT DEFAULT (datetime('now')),
    PRIMARY KEY (project_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_project_relations_user ON project_relations(user_id);

-- One personal project per user
CREATE UNIQUE INDEX IF NOT EXISTS idx_project_relations_single_personal
    ON project_relations(user_id) WHERE role = 'personalOwner';

-- ============================================================
-- Credentials (data is an encrypted blob, never plaintext)
-- ============================================================
CREATE TABLE IF NOT EXISTS credentials (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    data TEXT NOT NULL,
    is_managed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_credentials_type ON credentials(type);

CREATE TABLE IF NOT EXISTS shared_credentials (
    credential_id TEXT NOT NULL REFERENCES credentials(id) ON DELETE CASCADE,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('owner', 'editor', 'user')),
    created_at TEXT DEFAULT (datetime('now')),
    PRIMARY KEY (credential_id, project_id)
);

CREATE INDEX IF NOT EXISTS idx_shared_credentials_project ON shared_credentials(project_id);

-- At most one owner per credential, checked per statement
CREATE UNIQUE INDEX IF NOT EXISTS idx_shared_credentials_single_owner
    ON shared_credentials(credential_id) WHERE role = 'owner';

-- ============================================================
-- Workflows (only the project edges matter here)
-- ============================================================
CREATE TABLE IF NOT EXISTS workflows (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS shared_workflows (
    workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('owner', 'editor')),
    PRIMARY KEY (workflow_id, project_id)
);

CREATE INDEX IF NOT EXISTS idx_shared_workflows_project ON shared_workflows(project_id);

CREATE UNIQUE INDEX IF NOT EXISTS idx_shared_workflows_single_owner
    ON shared_workflows(workflow_id) WHERE role = 'owner';

-- ============================================================
-- Audit Log
-- ============================================================
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ts TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')),
    action TEXT NOT NULL,
    actor TEXT,
    component TEXT,
    details TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_ts ON audit_log(ts);
CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_log(action);
"""


class Transaction:
    """Handle for an open write transaction.

    Pass it down so that several store calls commit (or roll back) as one.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, tuple(params))

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> sqlite3.Cursor:
        return self.conn.executemany(sql, [tuple(r) for r in rows])


@dataclass
class Database:
    """SQLite database with per-thread connections and explicit transactions."""

    db_path: Path
    busy_timeout_ms: int = 5000
    transaction_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._conns = []
        self._conns_lock = threading.Lock()
        self._init_schema()

    @property
    def conn(self) -> sqlite3.Connection:
        """This thread's connection. Created on first use."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
        return conn

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: we issue BEGIN/COMMIT ourselves
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        with self._conns_lock:
            self._conns.append(conn)
        return conn

    def close(self) -> None:
        with self._conns_lock:
            for conn in self._conns:
                conn.close()
            self._conns.clear()
        self._local = threading.local()

    def _init_schema(self) -> None:
        conn = self.conn
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Snapshot read (or autocommit write) on this thread's connection."""
        return self.conn.execute(sql, tuple(params))

    def in_transaction(self) -> bool:
        return getattr(self._local, "trx", None) is not None

    @contextmanager
    def using(self, trx: Transaction | None) -> Iterator[Transaction]:
        """Join `trx` when given, else run in a fresh transaction."""
        if trx is not None:
            yield trx
            return
        with self.transaction() as t:
            yield t

    @contextmanager
    def transaction(self, *, timeout: float | None = None) -> Iterator[Transaction]:
        """Open a write transaction on this thread's connection.

        Nested calls on the same thread join the outer transaction. Exceeding
        `timeout` seconds aborts the transaction and raises TransactionTimeout.
        Any sqlite failure rolls back and surfaces as StoreError.
        """

        active: Transaction | None = getattr(self._local, "trx", None)
        if active is not None:
            yield active
            return

        conn = self.conn
        limit = self.transaction_timeout_seconds if timeout is None else timeout
        deadline = time.monotonic() + limit

        def _expired() -> int:
            return 1 if time.monotonic() > deadline else 0

        conn.set_progress_handler(_expired, 1000)
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            conn.set_progress_handler(None, 0)
            raise StoreError(f"could not open transaction: {e}") from e

        trx = Transaction(conn)
        self._local.trx = trx
        try:
            yield trx
            if _expired():
                raise TransactionTimeout(f"transaction exceeded {limit:.3f}s")
            conn.execute("COMMIT")
        except BaseException as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.debug("transaction_rolled_back", extra={"error": type(e).__name__})
            if isinstance(e, sqlite3.OperationalError) and "interrupt" in str(e):
                raise TransactionTimeout(f"transaction exceeded {limit:.3f}s") from e
            if isinstance(e, sqlite3.Error):
                raise StoreError(str(e)) from e
            raise
        finally:
            self._local.trx = None
            conn.set_progress_handler(None, 0)
