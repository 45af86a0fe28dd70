from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as seen by the team engine."""

    subject_id: str
    email: Optional[str] = None
    global_role: Optional[str] = None


def identity_from_user(user: Dict[str, Any]) -> Identity:
    return Identity(
        subject_id=str(user["id"]),
        email=user.get("email"),
        global_role=user.get("role"),
    )


def is_global_admin(identity: Optional[Identity]) -> bool:
    """True iff the caller's global role is "admin" (case-insensitive).

    Absent identities and missing or non-string roles resolve to False.
    """
    if identity is None:
        return False
    role = identity.global_role
    return isinstance(role, str) and role.lower() == "admin"
