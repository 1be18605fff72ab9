"""
Rebuild every store's cached rating aggregate from the ratings table.

Safe to run at any time, e.g. from cron after an outage that left
aggregates stale.
"""

import sys
import os
import logging

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'backend'))

from app.config import settings
from app.database import Database
from app.services.rating_ledger import RatingLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def recompute() -> int:
    database = Database(settings.DATABASE_URL)
    try:
        with database.session() as db:
            return RatingLedger(db).recompute_all()
    finally:
        database.dispose()


if __name__ == "__main__":
    corrected = recompute()
    logger.info(f"Done: {corrected} store aggregate(s) corrected")
