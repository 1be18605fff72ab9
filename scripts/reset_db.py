import sys
import os
import logging

# Add parent directory to path to allow importing app modules
sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'backend'))

from app.config import settings
from app.database import Database

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def reset_database():
    database = Database(settings.DATABASE_URL)
    try:
        logger.info(f"Starting database reset on {settings.DATABASE_URL}...")

        # Drop all tables
        logger.info("Dropping all tables...")
        database.drop_all()

        # Create all tables
        logger.info("Recreating all tables...")
        database.create_all()

        logger.info("Database reset completed successfully.")
    finally:
        database.dispose()


if __name__ == "__main__":
    reset_database()
