from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from typing import Optional
import logging

from database import engine as default_engine, Base
import models  # noqa: F401  registers the jobs table on Base.metadata

logger = logging.getLogger(__name__)


def _check_column_exists(inspector, table: str, column: str) -> bool:
    """Check if a column exists in a table"""
    columns = [col['name'] for col in inspector.get_columns(table)]
    return column in columns


def _add_column_if_missing(engine: Engine, inspector, table: str, column: str, column_def: str) -> bool:
    """Add a column to a table if it doesn't exist"""
    if _check_column_exists(inspector, table, column):
        return False

    logger.info(f"Running migration: Adding '{column}' column to {table} table...")
    with engine.connect() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {column_def}"))
        conn.commit()
    logger.info(f"✅ Migration complete: '{column}' column added to {table}")
    return True


def _run_essential_migrations(engine: Engine):
    """
    Bring job tables created by older releases up to the current schema.

    Older deployments created ``jobs`` without the attempt counter.
    """
    inspector = inspect(engine)
    if 'jobs' not in inspector.get_table_names():
        return
    _add_column_if_missing(engine, inspector, 'jobs', 'attempts', 'INTEGER NOT NULL DEFAULT 0')


def init_database(engine: Optional[Engine] = None):
    """Create the job table if needed and apply pending column migrations"""
    engine = engine or default_engine
    Base.metadata.create_all(bind=engine)

    try:
        _run_essential_migrations(engine)
    except Exception as e:
        logger.warning(f"Migration warning (non-fatal): {e}")

    logger.info("Database initialized")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
