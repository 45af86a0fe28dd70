"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import dataclasses

import pytest
from fastapi.testclient import TestClient

from teamhub.api.server import create_app
from teamhub.auth.crud import grant_admin, register_user
from teamhub.auth.identity import Identity, identity_from_user
from teamhub.config import Config
from teamhub.db import connect, init_db
from teamhub.teams import create_team

PASSWORD = "correct-horse-battery"


def make_user(dsn: str, name: str, email: str, *, admin: bool = False) -> Identity:
    with connect(dsn) as conn:
        user = register_user(conn, name=name, email=email, password=PASSWORD)
        if admin:
            user = grant_admin(conn, user_id=user["id"])
    return identity_from_user(user)


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        APP_ENV="test",
        DB_DSN=str(tmp_path / "teamhub.sqlite"),
        AUTH_JWT_SECRET="test-secret",
        AUTH_TOKEN_EXPIRE_MINUTES=60,
        ALLOW_BOOTSTRAP_ADMIN=False,
    )


@pytest.fixture
def db(cfg) -> str:
    """An initialized SQLite DSN."""
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture
def admin(db) -> Identity:
    return make_user(db, "Ada Admin", "ada@example.com", admin=True)


@pytest.fixture
def alice(db) -> Identity:
    return make_user(db, "Alice", "alice@example.com")


@pytest.fixture
def bob(db) -> Identity:
    return make_user(db, "Bob", "bob@example.com")


@pytest.fixture
def team(db, admin):
    with connect(db) as conn:
        return create_team(conn, name="Engineering", description="Builds things", actor=admin)


@pytest.fixture
def client(cfg):
    with TestClient(create_app(cfg)) as c:
        yield c


@pytest.fixture
def bootstrap_client(cfg):
    with TestClient(create_app(dataclasses.replace(cfg, ALLOW_BOOTSTRAP_ADMIN=True))) as c:
        yield c
