from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Optional

from teamhub.db import is_integrity_error
from teamhub.errors import Conflict, NotFound, ValidationError
from teamhub.util.time import utcnow_iso

from .security import hash_password, verify_password


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

USER_COLUMNS = "id, name, email, role, created_at, updated_at, deleted_at"


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    # Convenience flag used by clients for gating.
    d["is_admin"] = str(d.get("role") or "").lower() == "admin"
    return d


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=? AND deleted_at IS NULL LIMIT 1",
        (e,),
    ).fetchone()


def get_user_by_id(conn: Any, user_id: str) -> Optional[Any]:
    if not user_id:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE id=? AND deleted_at IS NULL LIMIT 1",
        (str(user_id),),
    ).fetchone()


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def register_user(conn: Any, *, name: str, email: str, password: str) -> Dict[str, Any]:
    """Create a user account and return its public record.

    Raises ValidationError for a short name, a malformed email or a short
    password, and Conflict when the normalized email is already registered.
    """
    if not isinstance(name, str) or len(name.strip()) < 2:
        raise ValidationError("Name must be at least 2 characters.", detail="name_too_short")
    if not isinstance(email, str) or not _EMAIL_RE.match(email.strip()):
        raise ValidationError("A valid email is required.", detail="email_invalid")
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters.", detail="password_too_short")

    e = normalize_email(email)
    if get_user_by_email(conn, e) is not None:
        raise Conflict("Email already in use.", detail="email_exists")

    now = utcnow_iso()
    try:
        row = conn.execute(
            f"""
            INSERT INTO users (id, name, email, password_hash, role, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            RETURNING {USER_COLUMNS}
            """,
            (str(uuid.uuid4()), name.strip(), e, hash_password(password), "user", now, now),
        ).fetchone()
    except Exception as exc:
        # Lost a race against a concurrent registration (or the email belongs to a
        # soft-deleted account, which still holds the UNIQUE slot).
        if is_integrity_error(exc):
            raise Conflict("Email already in use.", detail="email_exists") from exc
        raise
    return public_user(row)


def grant_admin(conn: Any, *, user_id: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
    """Promote a user (by id, or else by email) to global admin."""
    if not user_id and not email:
        raise ValidationError("Provide userId or email.", detail="user_id_or_email_required")

    target_id = user_id
    if not target_id:
        row = get_user_by_email(conn, str(email))
        if row is None:
            raise NotFound("User not found for provided email.", detail="user_not_found")
        target_id = row["id"]

    row = conn.execute(
        f"""
        UPDATE users SET role='admin', updated_at=?
        WHERE id=? AND deleted_at IS NULL
        RETURNING {USER_COLUMNS}
        """,
        (utcnow_iso(), str(target_id)),
    ).fetchone()
    if row is None:
        raise NotFound("User not found or soft deleted.", detail="user_not_found")

    _debug(f"Granted global admin to user_id={target_id}")
    return public_user(row)
