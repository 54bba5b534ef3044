from __future__ import annotations

import argparse
import json
import logging

from sqlalchemy import select, text

from config import DATABASE_URL, LOG_LEVEL
from nikah.db import Database
from nikah.models import Account, Role
from nikah.services import (
    ContentService,
    InterestService,
    ModerationService,
    NotificationService,
    StatusService,
    VerificationService,
)

logger = logging.getLogger("nikah.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintenance commands for the Madhubani Nikah backend.")
    parser.add_argument(
        "--database-url",
        default=DATABASE_URL,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")
    sub.add_parser("seed-content", help="Insert the built-in Islamic content when the table is empty")

    cleanup = sub.add_parser("cleanup", help="Expire stale interests, notifications and verification requests")
    cleanup.add_argument(
        "--activity-days",
        type=int,
        default=30,
        help="Delete activity log entries older than this many days (default: 30)",
    )

    admin = sub.add_parser("make-admin", help="Give an existing account a staff role")
    admin.add_argument("email", help="Account email")
    admin.add_argument(
        "--role",
        default=Role.ADMIN.value,
        choices=[Role.MODERATOR.value, Role.ADMIN.value, Role.SUPER_ADMIN.value],
    )

    sub.add_parser("health", help="Check the database connection")
    return parser.parse_args(argv)


def run_cleanup(database: Database, activity_days: int = 30) -> dict[str, int]:
    """One pass of every periodic housekeeping job."""
    with database.session_scope() as session:
        notifications = NotificationService(session)
        return {
            "expired_interests": InterestService(session, notifications).cleanup_expired_interests(),
            "expired_notifications": notifications.cleanup_expired_notifications(),
            "lifted_suspensions": ModerationService(session, notifications).lift_expired_suspensions(),
            "expired_verifications": VerificationService(session, notifications).expire_stale_requests(),
            "deleted_activities": StatusService(session).cleanup_old_activities(activity_days),
        }


def make_admin(database: Database, email: str, role: str = Role.ADMIN.value) -> None:
    with database.session_scope() as session:
        account = session.scalars(select(Account).where(Account.email == email.strip().lower())).first()
        if account is None:
            raise SystemExit(f"No account with email {email}")
        account.role = role
    logger.info("[cli] %s is now %s", email, role)


def check_health(database: Database) -> bool:
    try:
        with database.session_scope() as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("[cli] database check failed: %s", e)
        return False
    return True


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    database = Database(args.database_url)

    if args.command == "init-db":
        database.create_all()
        print(f"Tables created at {args.database_url}")
    elif args.command == "seed-content":
        database.create_all()
        with database.session_scope() as session:
            added = ContentService(session).seed()
        print(f"Seeded {added} content item(s)")
    elif args.command == "cleanup":
        print(json.dumps(run_cleanup(database, args.activity_days), indent=2))
    elif args.command == "make-admin":
        make_admin(database, args.email, args.role)
        print(f"{args.email} is now {args.role}")
    elif args.command == "health":
        ok = check_health(database)
        print(json.dumps({"database": "ok" if ok else "unavailable"}))
        if not ok:
            raise SystemExit(1)


if __name__ == "__main__":
    main()
