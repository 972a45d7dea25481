"""
Seed the admin account and the default platform settings.

Idempotent: an existing admin keeps its password, existing settings keep their values.

Usage:
  python scripts/init_db.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.shaderhouse.models import User  # noqa: E402
from app.shaderhouse.modules.settings.service import seed_default_settings  # noqa: E402
from app.shaderhouse.utils import utcnow  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402


def seed_only(*, database_url_override: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@shaderhouse.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    # Direct engine/session so this can run in release without building the app.
    with script_session(database_url(database_url_override)) as s:
        added = seed_default_settings(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                name="Administrator",
                password_hash=generate_password_hash(admin_password),
                role="ADMIN",
                is_active=True,
                email_verified_at=utcnow(),
            )
            s.add(user)
        elif user.role != "ADMIN":
            user.role = "ADMIN"

    print("Initialized database (seed_only).")
    print(f"Settings added: {added}")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
