#!/usr/bin/env python3
"""Promote a user to ADMIN (idempotent).

Usage:
  python scripts/make_admin.py someone@example.com
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.shaderhouse.models import User  # noqa: E402
from app.shaderhouse.utils import utcnow  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("email", help="Email of the user to promote")
    args = parser.parse_args()

    with script_session(database_url()) as s:
        user = s.query(User).filter(User.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            sys.exit(1)
        if user.role == "ADMIN":
            print(f"User is already an admin: {user.email}")
            return
        user.role = "ADMIN"
        user.updated_at = utcnow()
        print(f"Promoted {user.email} to ADMIN")


if __name__ == "__main__":
    main()
