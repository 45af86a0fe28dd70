"""Create a user in the configured DB.

Usage:
  python scripts/create_user.py --name Alice --email alice@example.com --password '...' [--admin]

NOTE: This is intended for local/dev. `--admin` is the offline alternative to
the bootstrap endpoint.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from teamhub.config import load_config
from teamhub.db import init_db, connect
from teamhub.auth.crud import grant_admin, register_user


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--admin", action="store_true", help="Grant global admin after creating the user")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = register_user(conn, name=args.name, email=args.email, password=args.password)
        if args.admin:
            u = grant_admin(conn, user_id=u["id"])

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
