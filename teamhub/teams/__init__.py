"""Team and membership management.

- `access`: who may manage or view a team
- `service`: team lifecycle (list / create / get / update / archive)
- `members`: membership mutations (list / add / remove / change role)
- `roles`: the closed set of team-scoped role tiers
"""

from .access import can_manage, has_team_authority, is_active_member
from .members import add_member, change_member_role, list_members, remove_member
from .roles import TeamRole, list_roles
from .service import archive_team, create_team, get_team, list_teams, update_team

__all__ = [
    "can_manage",
    "has_team_authority",
    "is_active_member",
    "add_member",
    "change_member_role",
    "list_members",
    "remove_member",
    "TeamRole",
    "list_roles",
    "archive_team",
    "create_team",
    "get_team",
    "list_teams",
    "update_team",
]
