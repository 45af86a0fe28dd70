"""Team authorization checks.

Policy for every mutating team operation:

    can_manage = is_global_admin(actor) OR has_team_authority(actor, team)

Global admin always wins. Team-local authority comes from the caller's
active membership row.
"""

from __future__ import annotations

from typing import Any, Optional

from teamhub.auth.identity import Identity, is_global_admin
from teamhub.errors import Forbidden

from .roles import parse_role


def has_team_authority(conn: Any, user_id: Optional[str], team_id: Optional[str]) -> bool:
    """True if the user is a manager or admin of the team.

    Fails closed on missing ids without touching the store. Honors either
    signal on the row: the role tier or the is_manager flag.
    """
    if not user_id or not team_id:
        return False

    row = conn.execute(
        """
        SELECT team_role, COALESCE(is_manager, FALSE) AS is_manager
        FROM team_members
        WHERE team_id=? AND user_id=? AND deleted_at IS NULL
        LIMIT 1
        """,
        (str(team_id), str(user_id)),
    ).fetchone()
    if row is None:
        return False

    role = parse_role(row["team_role"])
    return bool(row["is_manager"]) or (role is not None and role.is_manager)


def is_active_member(conn: Any, user_id: Optional[str], team_id: Optional[str]) -> bool:
    if not user_id or not team_id:
        return False
    row = conn.execute(
        "SELECT 1 FROM team_members WHERE team_id=? AND user_id=? AND deleted_at IS NULL LIMIT 1",
        (str(team_id), str(user_id)),
    ).fetchone()
    return row is not None


def can_manage(conn: Any, actor: Optional[Identity], team_id: Optional[str]) -> bool:
    if is_global_admin(actor):
        return True
    if actor is None:
        return False
    return has_team_authority(conn, actor.subject_id, team_id)


def require_manage(conn: Any, actor: Optional[Identity], team_id: Optional[str]) -> None:
    if not can_manage(conn, actor, team_id):
        raise Forbidden()


def require_view(conn: Any, actor: Optional[Identity], team_id: Optional[str]) -> None:
    """Read access: global admin, or any active member of the team."""
    if is_global_admin(actor):
        return
    if actor is None or not is_active_member(conn, actor.subject_id, team_id):
        raise Forbidden()
