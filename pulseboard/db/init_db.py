"""
Database initialization script.

Run this to create the database tables (and optionally the demo data):
    python -m pulseboard.db.init_db [--seed]
"""

import argparse
import logging

from pulseboard.db.database import init_db, get_session

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create pulseboard tables")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Load the demo people, tasks, commits and issues after creating tables"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info("Initializing database...")
    init_db()

    if args.seed:
        from pulseboard.sync.ingest import seed_demo_data
        db = get_session()
        try:
            counts = seed_demo_data(db)
            logger.info(f"Seeded demo data: {counts}")
        finally:
            db.close()

    logger.info("Database initialization complete!")


if __name__ == "__main__":
    main()
