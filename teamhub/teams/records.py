"""Row-level helpers shared by the team and membership operations.

Soft delete is a filter here: the `active` helpers only ever see rows with
`deleted_at IS NULL`.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from teamhub.db import is_integrity_error
from teamhub.errors import Conflict, NotFound
from teamhub.util.time import utcnow_iso

from .roles import TeamRole


TEAM_COLUMNS = "id, name, description, created_at, updated_at, deleted_at"
MEMBER_COLUMNS = "team_id, user_id, team_role, is_manager, created_at, updated_at, deleted_at"


def membership_dict(row: Any) -> Dict[str, Any]:
    d = dict(row)
    # SQLite hands BOOLEAN back as 0/1.
    if "is_manager" in d:
        d["is_manager"] = bool(d["is_manager"])
    return d


def get_active_team(conn: Any, team_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        f"SELECT {TEAM_COLUMNS} FROM teams WHERE id=? AND deleted_at IS NULL",
        (str(team_id),),
    ).fetchone()
    return dict(row) if row is not None else None


def require_active_team(conn: Any, team_id: str) -> Dict[str, Any]:
    team = get_active_team(conn, team_id)
    if team is None:
        raise NotFound("Team not found.", detail="team_not_found")
    return team


def require_active_user(conn: Any, user_id: str) -> None:
    row = conn.execute(
        "SELECT 1 FROM users WHERE id=? AND deleted_at IS NULL LIMIT 1",
        (str(user_id),),
    ).fetchone()
    if row is None:
        raise NotFound("User not found.", detail="user_not_found")


def upsert_membership(conn: Any, *, team_id: str, user_id: str, role: TeamRole) -> Dict[str, Any]:
    """Set (team_id, user_id) to `role`, creating the membership if absent.

    Keyed on the UNIQUE(team_id, user_id) constraint: an existing row, active or
    soft-deleted, is reactivated in place and keeps its id and created_at.
    Concurrent calls for the same pair therefore converge on a single row.
    """
    now = utcnow_iso()
    try:
        row = conn.execute(
            f"""
            INSERT INTO team_members (id, team_id, user_id, team_role, is_manager, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            ON CONFLICT (team_id, user_id)
            DO UPDATE SET deleted_at = NULL,
                          team_role = excluded.team_role,
                          is_manager = excluded.is_manager,
                          updated_at = excluded.updated_at
            RETURNING {MEMBER_COLUMNS}
            """,
            (str(uuid.uuid4()), str(team_id), str(user_id), role.value, role.is_manager, now, now),
        ).fetchone()
    except Exception as exc:
        # Anything the upsert can't absorb (e.g. a foreign key to a row that vanished).
        if is_integrity_error(exc):
            raise Conflict("Membership could not be saved.", detail="membership_conflict") from exc
        raise
    return membership_dict(row)
