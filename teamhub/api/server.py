from __future__ import annotations

import sqlite3
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from teamhub import __version__
from teamhub.auth import Identity, get_current_user, get_identity
from teamhub.auth.crud import grant_admin, public_user, register_user, verify_user_credentials
from teamhub.auth.security import token_for_user
from teamhub.config import Config, load_config
from teamhub.db import close_pools, connect, init_db
from teamhub.errors import ServiceError
from teamhub.teams import (
    add_member,
    archive_team,
    change_member_role,
    create_team,
    get_team,
    list_members,
    list_roles,
    list_teams,
    remove_member,
    update_team,
)
from teamhub.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter()


def _cfg(request: Request) -> Config:
    return request.app.state.cfg


def _db(request: Request) -> Any:
    """One connection, one transaction, for the duration of the request handler."""
    cfg = _cfg(request)
    return connect(cfg.DB_DSN, pool_min=cfg.DB_POOL_MIN, pool_max=cfg.DB_POOL_MAX)


def _issue_token(cfg: Config, user: Dict[str, Any]) -> str:
    return token_for_user(user, secret=cfg.AUTH_JWT_SECRET, expires_minutes=cfg.AUTH_TOKEN_EXPIRE_MINUTES)


# -----------------------------
# Health
# -----------------------------


@router.get("/")
def health(request: Request) -> Dict[str, Any]:
    return {
        "status": "ok",
        "message": "Service is healthy",
        "timestamp": utcnow_iso(),
        "environment": _cfg(request).APP_ENV,
    }


# -----------------------------
# Auth
# -----------------------------


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


@router.post("/api/auth/register", status_code=201)
def auth_register(payload: RegisterRequest, request: Request) -> Dict[str, Any]:
    cfg = _cfg(request)
    with _db(request) as conn:
        user = register_user(conn, name=payload.name, email=payload.email, password=payload.password)
    return {"user": user, "token": _issue_token(cfg, user)}


@router.post("/api/auth/login")
def auth_login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="email_and_password_required")

    cfg = _cfg(request)
    with _db(request) as conn:
        row = verify_user_credentials(conn, payload.email, payload.password)
        if row is None:
            raise HTTPException(status_code=401, detail="invalid_credentials")
        user = public_user(row)
    return {"user": user, "token": _issue_token(cfg, user)}


@router.get("/api/auth/me")
def auth_me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user}


# -----------------------------
# Bootstrap
# -----------------------------


class GrantAdminRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    email: Optional[str] = None


@router.post("/api/bootstrap/grant-admin")
def bootstrap_grant_admin(payload: GrantAdminRequest, request: Request) -> Dict[str, Any]:
    """Promote a user to global admin.

    Unauthenticated on purpose, so it is disabled unless ALLOW_BOOTSTRAP_ADMIN
    is set. Enable it once to create the first admin, then turn it off.
    """
    if not _cfg(request).ALLOW_BOOTSTRAP_ADMIN:
        raise HTTPException(status_code=403, detail="bootstrap_disabled")
    with _db(request) as conn:
        user = grant_admin(conn, user_id=payload.user_id, email=payload.email)
    return {"user": user}


# -----------------------------
# Teams
# -----------------------------


class CreateTeamRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class UpdateTeamRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.get("/api/teams")
def teams_list(request: Request, actor: Identity = Depends(get_identity)) -> Dict[str, Any]:
    with _db(request) as conn:
        return {"items": list_teams(conn, actor)}


@router.post("/api/teams", status_code=201)
def teams_create(
    payload: CreateTeamRequest,
    request: Request,
    actor: Identity = Depends(get_identity),
) -> Dict[str, Any]:
    with _db(request) as conn:
        return create_team(conn, name=payload.name, description=payload.description, actor=actor)


@router.get("/api/teams/{team_id}")
def teams_get(team_id: str, request: Request, actor: Identity = Depends(get_identity)) -> Dict[str, Any]:
    with _db(request) as conn:
        return get_team(conn, team_id, actor)


@router.patch("/api/teams/{team_id}")
def teams_update(
    team_id: str,
    payload: UpdateTeamRequest,
    request: Request,
    actor: Identity = Depends(get_identity),
) -> Dict[str, Any]:
    # Only fields the client actually sent: an omitted description is left alone,
    # an empty one clears it.
    changes = payload.model_dump(exclude_unset=True)
    with _db(request) as conn:
        return update_team(conn, team_id, changes, actor)


@router.delete("/api/teams/{team_id}")
def teams_archive(team_id: str, request: Request, actor: Identity = Depends(get_identity)) -> Dict[str, Any]:
    with _db(request) as conn:
        return archive_team(conn, team_id, actor)


# -----------------------------
# Team members
# -----------------------------


class AddMemberRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    role: Optional[str] = None


class ChangeRoleRequest(BaseModel):
    role: Optional[str] = None


@router.get("/api/teams/{team_id}/members")
def members_list(team_id: str, request: Request, actor: Identity = Depends(get_identity)) -> Dict[str, Any]:
    with _db(request) as conn:
        return {"items": list_members(conn, team_id, actor)}


@router.post("/api/teams/{team_id}/members", status_code=201)
def members_add(
    team_id: str,
    payload: AddMemberRequest,
    request: Request,
    actor: Identity = Depends(get_identity),
) -> Dict[str, Any]:
    with _db(request) as conn:
        return add_member(conn, team_id, payload.user_id, payload.role, actor)


@router.patch("/api/teams/{team_id}/members/{user_id}")
def members_change_role(
    team_id: str,
    user_id: str,
    payload: ChangeRoleRequest,
    request: Request,
    actor: Identity = Depends(get_identity),
) -> Dict[str, Any]:
    with _db(request) as conn:
        return change_member_role(conn, team_id, user_id, payload.role, actor)


@router.delete("/api/teams/{team_id}/members/{user_id}")
def members_remove(
    team_id: str,
    user_id: str,
    request: Request,
    actor: Identity = Depends(get_identity),
) -> Dict[str, Any]:
    with _db(request) as conn:
        return remove_member(conn, team_id, user_id, actor)


# -----------------------------
# Roles
# -----------------------------


@router.get("/api/roles")
def roles_list(_actor: Identity = Depends(get_identity)) -> Dict[str, Any]:
    return {"items": list_roles()}


# Role grants used to live in a separate table. Team roles are now managed
# through the member endpoints.
@router.post("/api/roles/assign")
def roles_assign_gone(_actor: Identity = Depends(get_identity)) -> JSONResponse:
    return JSONResponse(
        status_code=410,
        content={"detail": "gone", "error": "Deprecated. Use /api/teams/{teamId}/members or PATCH member role."},
    )


@router.delete("/api/roles/assign/{assignment_id}")
def roles_revoke_gone(assignment_id: str, _actor: Identity = Depends(get_identity)) -> JSONResponse:
    return JSONResponse(
        status_code=410,
        content={"detail": "gone", "error": "Deprecated. Use team member updates instead."},
    )


# -----------------------------
# Errors
# -----------------------------


def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        # Storage / internal details stay in the log.
        _debug(f"{request.method} {request.url.path} failed: {exc.message}")
        return _internal_error_response()
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": exc.message})


def _internal_error_response() -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": "internal_error", "error": "Internal Server Error"})


def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Same body shape as service errors. `detail` is the snake_case code.
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": HTTPStatus(exc.status_code).phrase},
        headers=getattr(exc, "headers", None),
    )


def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed JSON or wrongly typed fields are a plain 400 like any other invalid input.
    names = {".".join(p for p in e.get("loc", ()) if isinstance(p, str) and p != "body") for e in exc.errors()}
    fields = sorted(n for n in names if n)
    message = f"Invalid request body: {', '.join(fields)}." if fields else "Invalid request body."
    return JSONResponse(status_code=400, content={"detail": "validation_error", "error": message})


def _database_error(request: Request, exc: Exception) -> JSONResponse:
    _debug(f"{request.method} {request.url.path} database error: {exc!r}")
    return _internal_error_response()


def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    _debug(f"{request.method} {request.url.path} unexpected error: {exc!r}")
    return _internal_error_response()


def _install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(sqlite3.Error, _database_error)
    try:
        import psycopg2
    except Exception:
        psycopg2 = None  # type: ignore[assignment]
    if psycopg2 is not None:
        app.add_exception_handler(psycopg2.Error, _database_error)
    app.add_exception_handler(Exception, _unexpected_error)


# -----------------------------
# App
# -----------------------------


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or load_config()

    app = FastAPI(title="Teamhub API", version=__version__)
    # Make config available to auth deps and handlers.
    app.state.cfg = cfg

    @app.on_event("startup")
    def _on_startup() -> None:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)
        if cfg.ALLOW_BOOTSTRAP_ADMIN:
            _debug("ALLOW_BOOTSTRAP_ADMIN is enabled; disable it once the first admin exists")

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        close_pools()

    _install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()
