import sqlite3
import threading
from contextlib import contextmanager

import pytest

from teamhub import db as db_module
from teamhub.db import _detect_dialect, _qmark_to_pct, close_pools, connect, init_db, is_integrity_error
from teamhub.teams import has_team_authority


def test_detect_dialect():
    assert _detect_dialect("postgresql://u:p@localhost/teamhub") == "postgres"
    assert _detect_dialect("postgres://localhost/teamhub") == "postgres"
    assert _detect_dialect("./teamhub.sqlite") == "sqlite"
    assert _detect_dialect("sqlite:///tmp/x.sqlite") == "sqlite"
    assert _detect_dialect("") == "sqlite"


def test_qmark_to_pct_skips_quoted_text():
    sql = "SELECT '?' AS q, \"a?b\" FROM t WHERE x=? AND y='it''s ?' AND z=?"
    assert _qmark_to_pct(sql) == "SELECT '?' AS q, \"a?b\" FROM t WHERE x=%s AND y='it''s ?' AND z=%s"


def test_init_db_is_idempotent(db):
    init_db(db)
    with connect(db) as conn:
        tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"users", "teams", "team_members"} <= tables


def test_connect_rolls_back_on_error(db, admin):
    with pytest.raises(RuntimeError):
        with connect(db) as conn:
            conn.execute("UPDATE users SET name='Changed' WHERE id=?", (admin.subject_id,))
            raise RuntimeError("abort")
    with connect(db) as conn:
        row = conn.execute("SELECT name FROM users WHERE id=?", (admin.subject_id,)).fetchone()
    assert row["name"] == "Ada Admin"


def test_duplicate_membership_is_an_integrity_error(db, admin, team):
    with connect(db) as conn:
        with pytest.raises(sqlite3.IntegrityError) as ei:
            conn.execute(
                "INSERT INTO team_members (id, team_id, user_id, created_at, updated_at) VALUES (?,?,?,?,?)",
                ("dup", team["id"], admin.subject_id, "now", "now"),
            )
    assert is_integrity_error(ei.value) is True
    assert is_integrity_error(ValueError("x")) is False


def test_migrates_tables_without_soft_delete_or_flag(tmp_path):
    dsn = str(tmp_path / "legacy.sqlite")
    raw = sqlite3.connect(dsn)
    raw.executescript(
        """
        CREATE TABLE users (id TEXT PRIMARY KEY, name TEXT NOT NULL, email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL, role TEXT DEFAULT 'user', created_at TEXT NOT NULL, updated_at TEXT NOT NULL);
        CREATE TABLE teams (id TEXT PRIMARY KEY, name TEXT NOT NULL, description TEXT,
            created_at TEXT NOT NULL, updated_at TEXT NOT NULL);
        CREATE TABLE team_members (id TEXT PRIMARY KEY, team_id TEXT NOT NULL, user_id TEXT NOT NULL,
            team_role TEXT NOT NULL DEFAULT 'member', created_at TEXT NOT NULL, updated_at TEXT NOT NULL,
            UNIQUE (team_id, user_id));
        INSERT INTO users VALUES ('u1', 'Old Manager', 'old@example.com', 'x', 'user', 't', 't');
        INSERT INTO teams VALUES ('t1', 'Legacy', NULL, 't', 't');
        INSERT INTO team_members VALUES ('m1', 't1', 'u1', 'Manager', 't', 't');
        """
    )
    raw.close()

    init_db(dsn)

    with connect(dsn) as conn:
        row = conn.execute("SELECT is_manager, deleted_at FROM team_members WHERE id='m1'").fetchone()
        assert row["is_manager"] == 1
        assert row["deleted_at"] is None
        assert has_team_authority(conn, "u1", "t1") is True


class _FakePgCursor:
    def execute(self, sql, params):
        pass

    def fetchone(self):
        return {"ok": 1}

    def fetchall(self):
        return []


class _FakePgConn:
    closed = 0

    def cursor(self):
        return _FakePgCursor()

    def commit(self):
        pass

    def rollback(self):
        pass


class _StrictPool:
    """Like psycopg2's pool: getconn raises as soon as maxconn connections are out."""

    def __init__(self, minconn, maxconn, dsn, cursor_factory=None):
        self.maxconn = maxconn
        self.used = 0
        self.lock = threading.Lock()

    def getconn(self):
        from psycopg2.pool import PoolError

        with self.lock:
            if self.used >= self.maxconn:
                raise PoolError("connection pool exhausted")
            self.used += 1
        return _FakePgConn()

    def putconn(self, conn, close=False):
        with self.lock:
            self.used -= 1

    def closeall(self):
        pass


def test_busy_pool_makes_callers_wait(monkeypatch):
    pg_pool = pytest.importorskip("psycopg2.pool")
    monkeypatch.setattr(pg_pool, "ThreadedConnectionPool", _StrictPool)
    dsn = "postgresql://teamhub@localhost/pool-wait"

    holding, release, second_in = threading.Event(), threading.Event(), threading.Event()
    errors = []

    def first():
        with connect(dsn, pool_max=1):
            holding.set()
            release.wait(5)

    def second():
        holding.wait(5)
        try:
            with connect(dsn, pool_max=1):
                second_in.set()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=first), threading.Thread(target=second)]
    try:
        for t in threads:
            t.start()
        assert holding.wait(5)
        assert not second_in.wait(0.2)
        release.set()
        for t in threads:
            t.join(5)
    finally:
        release.set()
        close_pools()

    assert errors == []
    assert second_in.is_set()


def test_postgres_schema_lock_ends_with_the_transaction(monkeypatch):
    executed = []

    class _Recorder:
        def execute(self, sql, params=None):
            executed.append(" ".join(sql.split()))
            if "CREATE TABLE IF NOT EXISTS teams" in sql:
                raise RuntimeError("ddl failed")
            return self

    @contextmanager
    def fake_connect(dsn, **kwargs):
        yield _Recorder()

    monkeypatch.setattr(db_module, "connect", fake_connect)
    with pytest.raises(RuntimeError, match="ddl failed"):
        db_module.init_db("postgresql://teamhub@localhost/ddl")

    assert executed[0] == "SELECT pg_advisory_xact_lock(2147483647)"
    assert not any("advisory_unlock" in s for s in executed)
