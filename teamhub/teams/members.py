"""Team membership mutations.

Removal is a soft delete: the row and its history stay. Adding a member and
changing a member's role both resolve to the same "set membership to role X,
creating it if absent" upsert, so re-adding a removed member reactivates the
original row instead of creating a duplicate.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from teamhub.auth.identity import Identity
from teamhub.errors import NotFound, ValidationError
from teamhub.util.time import utcnow_iso

from .access import require_manage, require_view
from .records import MEMBER_COLUMNS, membership_dict, require_active_team, require_active_user, upsert_membership
from .roles import DEFAULT_ROLE, TeamRole, allowed_roles_text, parse_role


def _debug(msg: str) -> None:
    print(f"[members] {msg}")


def _require_role(role: Any) -> TeamRole:
    parsed = parse_role(role)
    if parsed is None:
        raise ValidationError(f"Invalid role. Allowed: {allowed_roles_text()}.", detail="invalid_role")
    return parsed


def list_members(conn: Any, team_id: Optional[str], actor: Optional[Identity]) -> List[Dict[str, Any]]:
    if not team_id:
        raise ValidationError("Team id is required.", detail="team_id_required")
    require_view(conn, actor, team_id)
    require_active_team(conn, team_id)

    rows = conn.execute(
        """
        SELECT m.user_id, u.name, u.email, m.team_role,
               COALESCE(m.is_manager, FALSE) AS is_manager,
               m.created_at, m.updated_at
        FROM team_members m
        JOIN users u ON u.id = m.user_id
        WHERE m.team_id = ? AND m.deleted_at IS NULL
        ORDER BY m.created_at ASC
        """,
        (str(team_id),),
    ).fetchall()
    return [membership_dict(r) for r in rows]


def add_member(
    conn: Any,
    team_id: Optional[str],
    user_id: Optional[str],
    role: Any,
    actor: Optional[Identity],
) -> Dict[str, Any]:
    """Add (or re-add) a user to a team. `role` defaults to the lowest tier."""
    if not team_id or not user_id:
        raise ValidationError("teamId and userId are required.", detail="team_id_and_user_id_required")
    requested = _require_role(role) if role else DEFAULT_ROLE

    require_manage(conn, actor, team_id)
    require_active_team(conn, team_id)
    require_active_user(conn, user_id)

    member = upsert_membership(conn, team_id=team_id, user_id=user_id, role=requested)
    _debug(f"Added user_id={user_id} to team_id={team_id} as {requested.value}")
    return member


def remove_member(
    conn: Any,
    team_id: Optional[str],
    user_id: Optional[str],
    actor: Optional[Identity],
) -> Dict[str, Any]:
    """Soft-remove a member. Removing someone who isn't an active member is NotFound."""
    if not team_id or not user_id:
        raise ValidationError("teamId and userId are required.", detail="team_id_and_user_id_required")
    require_manage(conn, actor, team_id)
    require_active_team(conn, team_id)

    now = utcnow_iso()
    row = conn.execute(
        f"""
        UPDATE team_members
        SET deleted_at = ?, updated_at = ?
        WHERE team_id = ? AND user_id = ? AND deleted_at IS NULL
        RETURNING {MEMBER_COLUMNS}
        """,
        (now, now, str(team_id), str(user_id)),
    ).fetchone()
    if row is None:
        raise NotFound("Membership not found or already removed.", detail="membership_not_found")

    _debug(f"Removed user_id={user_id} from team_id={team_id}")
    return membership_dict(row)


def change_member_role(
    conn: Any,
    team_id: Optional[str],
    user_id: Optional[str],
    role: Any,
    actor: Optional[Identity],
) -> Dict[str, Any]:
    """Set a user's role in a team.

    A user without an active membership is added at the requested role, so this
    succeeds for any existing user.
    """
    if not team_id or not user_id or not role:
        raise ValidationError("teamId, userId and role are required.", detail="team_id_user_id_role_required")
    requested = _require_role(role)

    require_manage(conn, actor, team_id)
    require_active_team(conn, team_id)
    require_active_user(conn, user_id)

    member = upsert_membership(conn, team_id=team_id, user_id=user_id, role=requested)
    _debug(f"Set role of user_id={user_id} in team_id={team_id} to {requested.value}")
    return member
