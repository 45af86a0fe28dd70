"""Authentication / identity helpers.

Auth is intentionally lightweight:

- Users table (name/email/password hash + free-text global role)
- HS256 JWT access tokens sent as `Authorization: Bearer <token>`

The team engine only ever sees an `Identity`; whether that identity is a
global admin is decided by `is_global_admin`.
"""

from .deps import get_current_user, get_identity
from .identity import Identity, is_global_admin
from .crud import grant_admin, register_user, verify_user_credentials

__all__ = [
    "get_current_user",
    "get_identity",
    "Identity",
    "is_global_admin",
    "grant_admin",
    "register_user",
    "verify_user_credentials",
]
