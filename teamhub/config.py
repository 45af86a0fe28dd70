import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    APP_ENV: str = os.environ.get("APP_ENV", "development")

    # Preferred: set TEAMHUB_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: TEAMHUB_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("TEAMHUB_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("TEAMHUB_DB_PATH", "./teamhub.sqlite")
    )

    # Postgres connection pool bounds (ignored for SQLite).
    DB_POOL_MIN: int = int(os.environ.get("DB_POOL_MIN", "1"))
    DB_POOL_MAX: int = int(os.environ.get("DB_POOL_MAX", "10"))

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get("AUTH_JWT_SECRET", "dev_change_me")
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "10080"))  # 7 days

    # One-time promotion of a user to global admin via /api/bootstrap/grant-admin.
    # Enable temporarily, promote the first admin, then turn it off again.
    ALLOW_BOOTSTRAP_ADMIN: bool = _env_bool("ALLOW_BOOTSTRAP_ADMIN", False) is True


def load_config() -> Config:
    return Config()
