"""Database schema for teamhub.

The schema is written once for SQLite and derived for Postgres with a small set of
textual transformations.

Timestamps are ISO-8601 TEXT (UTC, with 'Z', fixed-width microseconds) for
portability. ISO strings sort lexicographically in time order, so
`ORDER BY created_at` behaves the same on both engines.

Soft delete: every table carries a nullable `deleted_at`. Active rows are the ones
with `deleted_at IS NULL`; nothing is ever hard-deleted by the application.
"""

from __future__ import annotations


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth
-- Email is stored normalized (trimmed, lower-case), so the UNIQUE constraint is
-- case-insensitive without needing citext.
-- role is free text: 'admin' marks a global admin, anything else is a plain user.
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    role TEXT DEFAULT 'user',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_role ON users (role);

-- Teams
CREATE TABLE IF NOT EXISTS teams (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);

-- Team membership (role at team scope).
-- team_role: member | manager | admin
-- is_manager mirrors team_role in ('manager','admin'). It is written on every
-- role change and never set independently.
CREATE TABLE IF NOT EXISTS team_members (
    id TEXT PRIMARY KEY,
    team_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    team_role TEXT NOT NULL DEFAULT 'member' CHECK (team_role IN ('member','manager','admin')),
    is_manager BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT,
    UNIQUE (team_id, user_id),
    FOREIGN KEY (team_id) REFERENCES teams(id) ON DELETE CASCADE,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_team_members_team_created ON team_members (team_id, created_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    return "\n".join(lines)


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
