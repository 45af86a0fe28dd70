from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teamhub.db import connect
from teamhub.errors import Internal

from .crud import get_user_by_id, public_user
from .identity import Identity, identity_from_user
from .security import decode_access_token


_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    """Authenticate a request from its `Authorization: Bearer <jwt>` header.

    The token only names the subject. The user row is re-read so that a
    soft-deleted account stops working immediately and a freshly granted
    admin role applies without a new login.
    """

    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise Internal("Server configuration missing.", detail="server_config_missing")

    token = credentials.credentials if credentials is not None else None
    if not token:
        raise _unauthorized("missing_token")

    try:
        payload = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("token_expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("token_invalid")
    except Exception:
        raise _unauthorized("token_decode_error")

    sub = payload.get("sub")
    if not sub:
        raise _unauthorized("token_missing_sub")

    with connect(cfg.DB_DSN, pool_min=cfg.DB_POOL_MIN, pool_max=cfg.DB_POOL_MAX) as conn:
        row = get_user_by_id(conn, str(sub))
        if row is None:
            raise _unauthorized("user_not_found")
        return public_user(row)


def get_identity(user: Dict[str, Any] = Depends(get_current_user)) -> Identity:
    return identity_from_user(user)
