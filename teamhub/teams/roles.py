from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class TeamRole(str, Enum):
    """Team-scoped role tiers, lowest first."""

    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_manager(self) -> bool:
        return self.rank >= _RANK[TeamRole.MANAGER]


_RANK = {TeamRole.MEMBER: 0, TeamRole.MANAGER: 1, TeamRole.ADMIN: 2}

DEFAULT_ROLE = TeamRole.MEMBER

_DESCRIPTIONS = {
    TeamRole.MEMBER: "Member role",
    TeamRole.MANAGER: "Manager role",
    TeamRole.ADMIN: "Admin role",
}


def parse_role(value: Any) -> Optional[TeamRole]:
    """Case-insensitive lookup. Returns None for anything that isn't a known tier."""
    if not isinstance(value, str):
        return None
    try:
        return TeamRole(value.strip().lower())
    except ValueError:
        return None


def allowed_roles_text() -> str:
    return ", ".join(r.value for r in TeamRole)


def list_roles() -> List[Dict[str, Any]]:
    return [{"name": r.value, "description": _DESCRIPTIONS[r]} for r in TeamRole]
