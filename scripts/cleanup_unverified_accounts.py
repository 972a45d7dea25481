#!/usr/bin/env python3
"""
Delete accounts that never verified their email.

Only accounts older than --days with no purchases are removed; admins are never touched.

Usage:
  python scripts/cleanup_unverified_accounts.py --days 30 [--dry-run]
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

from sqlalchemy.orm import Session

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.shaderhouse.models import User  # noqa: E402
from app.shaderhouse.modules.payments.models import Purchase  # noqa: E402
from app.shaderhouse.utils import utcnow  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402


def find_stale_accounts(s: Session, days: int) -> list[User]:
    cutoff = utcnow() - timedelta(days=days)
    has_purchase = s.query(Purchase.id).filter(Purchase.user_id == User.id).exists()
    return (
        s.query(User)
        .filter(
            User.email_verified_at.is_(None),
            User.created_at < cutoff,
            User.role != "ADMIN",
            ~has_purchase,
        )
        .order_by(User.id.asc())
        .all()
    )


def cleanup(s: Session, days: int, *, dry_run: bool = False) -> int:
    stale = find_stale_accounts(s, days)
    for user in stale:
        print(f"{'Would delete' if dry_run else 'Deleting'} user_id={user.id} email={user.email} created={user.created_at:%Y-%m-%d}")
        if not dry_run:
            s.delete(user)
    return len(stale)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--days", type=int, default=30, help="Minimum account age in days")
    parser.add_argument("--dry-run", action="store_true", help="List accounts without deleting")
    args = parser.parse_args()
    if args.days < 1:
        parser.error("--days must be at least 1")

    with script_session(database_url()) as s:
        count = cleanup(s, args.days, dry_run=args.dry_run)
        if args.dry_run:
            s.rollback()
    print(f"{count} unverified account(s) {'found' if args.dry_run else 'deleted'}.")


if __name__ == "__main__":
    main()
