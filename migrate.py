"""
Backfill enrollments.section_id from the legacy users.section label.
Run: python migrate.py
"""
import logging
import sys

from database import SessionLocal, engine
from logging_config import setup_logging
from membership import backfill_enrollment_sections
import models

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging()
    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        _, orphans = backfill_enrollment_sections(db)
    finally:
        db.close()

    if orphans:
        logger.warning(f"{len(orphans)} enrollments carry a section label that names no section; "
                       f"they stay hidden from every instructor until the label or the catalog is fixed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
