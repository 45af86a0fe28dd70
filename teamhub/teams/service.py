"""Team lifecycle: list / create / get / update / archive.

All functions take an open connection from `teamhub.db.connect`. The caller's
`with connect(...)` block is the transaction boundary, so team creation and the
creator's membership commit or roll back together.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Mapping, Optional

from teamhub.auth.identity import Identity, is_global_admin
from teamhub.errors import Forbidden, NotFound, Unauthenticated, ValidationError
from teamhub.util.time import utcnow_iso

from .access import require_manage, require_view
from .records import TEAM_COLUMNS, require_active_team, upsert_membership
from .roles import TeamRole


def _debug(msg: str) -> None:
    print(f"[teams] {msg}")


def _clean_name(name: Any) -> Optional[str]:
    if not isinstance(name, str):
        return None
    n = name.strip()
    if len(n) < 2:
        return None
    return n


def _require_team_id(team_id: Optional[str]) -> str:
    if not team_id:
        raise ValidationError("Team id is required.", detail="team_id_required")
    return str(team_id)


def list_teams(conn: Any, actor: Optional[Identity]) -> List[Dict[str, Any]]:
    """Teams visible to the actor: all of them for a global admin, otherwise the
    teams the actor is an active member of. Newest first."""
    if actor is None:
        return []

    if is_global_admin(actor):
        rows = conn.execute(
            f"""
            SELECT {TEAM_COLUMNS}
            FROM teams
            WHERE deleted_at IS NULL
            ORDER BY created_at DESC
            """
        ).fetchall()
        return [dict(r) for r in rows]

    rows = conn.execute(
        """
        SELECT t.id, t.name, t.description, t.created_at, t.updated_at, t.deleted_at
        FROM teams t
        JOIN team_members m ON m.team_id = t.id
        WHERE m.user_id = ? AND m.deleted_at IS NULL AND t.deleted_at IS NULL
        ORDER BY t.created_at DESC
        """,
        (actor.subject_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def create_team(
    conn: Any,
    *,
    name: Any,
    description: Any = None,
    actor: Optional[Identity],
) -> Dict[str, Any]:
    """Create a team. Only global admins may do this; the creator becomes its manager."""
    if actor is None:
        raise Unauthenticated()
    if not is_global_admin(actor):
        raise Forbidden("Forbidden: only admins can create teams.", detail="admin_required")

    clean = _clean_name(name)
    if clean is None:
        raise ValidationError("Team name must be at least 2 characters.", detail="team_name_too_short")
    if description is not None and not isinstance(description, str):
        raise ValidationError("Description must be a string.", detail="description_invalid")

    now = utcnow_iso()
    row = conn.execute(
        f"""
        INSERT INTO teams (id, name, description, created_at, updated_at)
        VALUES (?,?,?,?,?)
        RETURNING {TEAM_COLUMNS}
        """,
        (str(uuid.uuid4()), clean, description or None, now, now),
    ).fetchone()
    team = dict(row)

    upsert_membership(conn, team_id=team["id"], user_id=actor.subject_id, role=TeamRole.MANAGER)

    _debug(f"Created team id={team['id']} name={clean!r} by user_id={actor.subject_id}")
    return team


def get_team(conn: Any, team_id: Optional[str], actor: Optional[Identity]) -> Dict[str, Any]:
    tid = _require_team_id(team_id)
    team = require_active_team(conn, tid)
    require_view(conn, actor, tid)
    return team


def update_team(
    conn: Any,
    team_id: Optional[str],
    changes: Mapping[str, Any],
    actor: Optional[Identity],
) -> Dict[str, Any]:
    """Apply name/description changes.

    A key's presence signals intent: `description=""` clears the description,
    leaving the key out leaves it untouched. A name that trims to fewer than
    2 characters is ignored.
    """
    tid = _require_team_id(team_id)
    require_manage(conn, actor, tid)

    fields: list[tuple[str, Any]] = []
    if "name" in changes:
        clean = _clean_name(changes.get("name"))
        if clean is not None:
            fields.append(("name", clean))
    if "description" in changes and isinstance(changes.get("description"), str):
        fields.append(("description", changes["description"]))

    if not fields:
        raise ValidationError("No valid fields to update.", detail="no_valid_fields")

    fields.append(("updated_at", utcnow_iso()))
    sets = ", ".join([f"{k}=?" for k, _ in fields])
    params = [v for _, v in fields] + [tid]

    row = conn.execute(
        f"""
        UPDATE teams SET {sets}
        WHERE id=? AND deleted_at IS NULL
        RETURNING {TEAM_COLUMNS}
        """,
        params,
    ).fetchone()
    if row is None:
        raise NotFound("Team not found or deleted.", detail="team_not_found")
    return dict(row)


def archive_team(conn: Any, team_id: Optional[str], actor: Optional[Identity]) -> Dict[str, Any]:
    """Soft-delete a team. Archiving an already archived team is NotFound."""
    tid = _require_team_id(team_id)
    require_manage(conn, actor, tid)

    now = utcnow_iso()
    row = conn.execute(
        f"""
        UPDATE teams SET deleted_at=?, updated_at=?
        WHERE id=? AND deleted_at IS NULL
        RETURNING {TEAM_COLUMNS}
        """,
        (now, now, tid),
    ).fetchone()
    if row is None:
        raise NotFound("Team not found or already deleted.", detail="team_not_found")

    _debug(f"Archived team id={tid}")
    return dict(row)
