"""
Create the first administrator from the command line.

Uses the same bootstrap path as ``POST /api/auth/register-admin``, so it
fails once an admin exists.
"""

import argparse
import getpass
import logging
import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'backend'))

from app.config import settings
from app.core.exceptions import AppError
from app.database import Database
from app.services.auth_service import AuthService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the first admin user")
    parser.add_argument("--name", required=True, help="Full name (20-60 characters)")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--address", required=True, help="Postal address")
    parser.add_argument(
        "--password",
        help="Password (prompted for when omitted)",
    )
    args = parser.parse_args()

    password = args.password or getpass.getpass("Admin password: ")

    database = Database(settings.DATABASE_URL)
    database.create_all()
    try:
        with database.session() as db:
            user = AuthService(db).bootstrap_admin(
                args.name,
                args.email,
                password,
                args.address,
                settings.ADMIN_BOOTSTRAP_SECRET,
            )
            logger.info(f"Admin created: id={user.id} email={user.email}")
    except AppError as e:
        logger.error(f"Could not create admin: {e.message}")
        return 1
    finally:
        database.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
