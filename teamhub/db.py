from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Sequence, Tuple
from urllib.parse import urlparse

from teamhub.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """'postgres' for postgres:// or postgresql:// URLs, otherwise 'sqlite'."""
    scheme = urlparse((dsn or "").strip()).scheme.lower()
    return "postgres" if scheme in ("postgres", "postgresql") else "sqlite"


# A quoted literal/identifier (copied through untouched) or a bare placeholder.
_QUOTED_OR_QMARK = re.compile(r"'(?:[^']|'')*'|\"[^\"]*\"|\?")


def _qmark_to_pct(sql: str) -> str:
    """Rewrite SQLite `?` placeholders as psycopg2 `%s`, leaving quoted text alone."""
    return _QUOTED_OR_QMARK.sub(lambda m: "%s" if m.group(0) == "?" else m.group(0), sql)


class PGCursor:
    """Cursor wrapper that accepts `?` placeholders."""

    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    @property
    def closed(self) -> bool:
        return bool(self._conn.closed)


# One pool per Postgres DSN, shared by every request in the process.
# psycopg2 pools raise PoolError instead of blocking once every connection is
# checked out, so each pool is paired with a semaphore of the same size and
# callers wait on that for a free slot.
_pools: Dict[str, Tuple[Any, threading.BoundedSemaphore]] = {}
_pools_lock = threading.Lock()


def _get_pool(dsn: str, *, pool_min: int, pool_max: int) -> Tuple[Any, threading.BoundedSemaphore]:
    try:
        import psycopg2.extras
        import psycopg2.pool
    except Exception as e:
        raise RuntimeError(
            "Postgres selected but psycopg2 is not installed. "
            "Install psycopg2-binary and try again."
        ) from e

    with _pools_lock:
        entry = _pools.get(dsn)
        if entry is None:
            lo = max(1, int(pool_min))
            hi = max(lo, int(pool_max))
            # RealDictCursor makes fetchone()/fetchall() rows act like dicts.
            pool = psycopg2.pool.ThreadedConnectionPool(
                lo, hi, dsn, cursor_factory=psycopg2.extras.RealDictCursor
            )
            entry = (pool, threading.BoundedSemaphore(hi))
            _pools[dsn] = entry
            _debug(f"Created Postgres pool (min={lo}, max={hi})")
        return entry


def close_pools() -> None:
    """Close every pooled Postgres connection (used on shutdown)."""
    with _pools_lock:
        for pool, _slots in _pools.values():
            pool.closeall()
        _pools.clear()


def _safe_rollback(conn: Any) -> None:
    # A failed rollback must not mask the error that triggered it.
    try:
        conn.rollback()
    except Exception as e:
        _debug(f"Rollback failed: {e!r}")


@contextmanager
def connect(db_dsn: str, *, pool_min: int = 1, pool_max: int = 10) -> Iterator[Any]:
    """Open a connection scoped to one transaction.

    The block commits when it exits normally and rolls back when it raises, so
    everything executed on the yielded connection is atomic.

    - SQLite: a fresh connection per call, WAL + NORMAL sync.
    - Postgres: a connection borrowed from the shared psycopg2 pool.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        pool, slots = _get_pool(dsn, pool_min=pool_min, pool_max=pool_max)
        # Wait for a free connection rather than failing when the pool is busy.
        slots.acquire()
        try:
            raw = pool.getconn()
            conn = PGConnection(raw)
            try:
                yield conn
                conn.commit()
            except Exception:
                _safe_rollback(conn)
                raise
            finally:
                pool.putconn(raw, close=conn.closed)
        finally:
            slots.release()
        return

    # SQLite fallback
    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Concurrency pragmas (safe defaults for concurrent API requests)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")  # 5s
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        _safe_rollback(conn)
        raise
    finally:
        conn.close()


def is_integrity_error(exc: BaseException) -> bool:
    """True for unique/foreign-key violations raised by either driver."""
    if isinstance(exc, sqlite3.IntegrityError):
        return True
    try:
        import psycopg2
    except Exception:
        return False
    return isinstance(exc, psycopg2.IntegrityError)


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        # Ensure only one process runs schema DDL at a time.
        # - Postgres: a transaction-scoped advisory lock, released when this block
        #   commits or rolls back.
        # - SQLite: DDL already takes an exclusive database lock.
        if dialect == "postgres":
            conn.execute("SELECT pg_advisory_xact_lock(2147483647)")
        _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Execute multi-statement DDL (naive split is OK for our schema)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    # SQLite can run it in one go
    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # Soft-delete columns on tables created before soft delete existed.
    for table in ("users", "teams", "team_members"):
        if not _has_column(conn, table, "deleted_at", dialect=dialect):
            conn.execute(f"ALTER TABLE {table} ADD COLUMN deleted_at TEXT")

    # Older team_members tables only carried team_role. Backfill the flag from it.
    if not _has_column(conn, "team_members", "is_manager", dialect=dialect):
        conn.execute("ALTER TABLE team_members ADD COLUMN is_manager BOOLEAN NOT NULL DEFAULT FALSE")
        conn.execute(
            "UPDATE team_members SET is_manager = TRUE WHERE lower(team_role) IN ('manager','admin')"
        )

    # Indexes over deleted_at can only exist once the column does.
    conn.execute("CREATE INDEX IF NOT EXISTS idx_teams_active_created ON teams (deleted_at, created_at)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_team_members_user ON team_members (user_id, deleted_at)")
