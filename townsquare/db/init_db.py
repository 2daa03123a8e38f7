import logging

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from townsquare.db.session import engine
from townsquare.db.base import Base

logger = logging.getLogger(__name__)

def init_db() -> None:
    """
    Initialize the database by running Alembic migrations.
    """
    try:
        alembic_cfg = Config("alembic.ini")
        tables = set(inspect(engine).get_table_names())
        if "notifications" in tables and "alembic_version" not in tables:
            # Schema came from create_all, which already installed the change trigger
            logger.info("Existing schema has no migration history, stamping it at head")
            command.stamp(alembic_cfg, "head")
            return
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations applied successfully")
    except Exception as e:
        logger.error(f"Error applying database migrations: {e}")
        raise


def create_all_tables() -> bool:
    try:
        existing_tables = inspect(engine).get_table_names()

        Base.metadata.create_all(bind=engine)

        new_tables = set(inspect(engine).get_table_names()) - set(existing_tables)
        if new_tables:
            logger.info(f"Created new tables: {new_tables}")

        return True
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        return False


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info("Applying database migrations")
    init_db()
    logger.info("Database is up to date")
