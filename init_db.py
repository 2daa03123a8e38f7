"""
Database initialization script.
Creates all tables directly, or applies the Alembic migrations with --migrate.
Run this as: python init_db.py [--migrate]
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("db-init")

from townsquare.db.init_db import create_all_tables, init_db

def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the Townsquare database")
    parser.add_argument("--migrate", action="store_true", help="Apply Alembic migrations instead of create_all")
    args = parser.parse_args()

    if args.migrate:
        logger.info("Applying database migrations")
        init_db()
        return 0

    logger.info("Creating database tables")
    if not create_all_tables():
        logger.error("Database initialization failed")
        return 1
    logger.info("Database initialization completed successfully")
    return 0

if __name__ == "__main__":
    sys.exit(main())
