"""Password hashing and bearer tokens.

Tokens are HS256 JWTs. `sub` is the user id; `email` and `role` are carried
for clients only; the server re-reads the user row on every request.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from passlib.context import CryptContext


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"
_REQUIRED_CLAIMS = ["sub", "iat", "exp"]


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """False for blank input or a hash passlib cannot identify."""
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def create_access_token(
    *,
    secret: str,
    user_id: str,
    email: str,
    role: Optional[str],
    expires_minutes: int,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    issued = datetime.now(timezone.utc)
    expires = issued + timedelta(minutes=max(1, int(expires_minutes)))
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=_JWT_ALG)


def token_for_user(user: Mapping[str, Any], *, secret: str, expires_minutes: int) -> str:
    """Issue a token for a public user record (as returned by `public_user`)."""
    return create_access_token(
        secret=secret,
        user_id=str(user["id"]),
        email=str(user["email"]),
        role=user.get("role"),
        expires_minutes=expires_minutes,
    )


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    """Verify signature and expiry. Tokens missing `sub`, `iat` or `exp` are invalid."""
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG], options={"require": _REQUIRED_CLAIMS})
