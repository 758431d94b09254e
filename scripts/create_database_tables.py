"""
Create Database Tables Using SQLAlchemy

Creates all tables directly with create_all(), bypassing Alembic. Useful
for local development against SQLite or a scratch PostgreSQL database.
"""
import argparse
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import sqlalchemy as sa

from src.gridrisk.db.session import create_all_tables, drop_all_tables, get_engine
from src.gridrisk.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    """Create all database tables."""
    parser = argparse.ArgumentParser(description="Create GridRisk database tables")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()
    engine = get_engine()

    existing = sa.inspect(engine).get_table_names()
    if existing and args.drop:
        logger.warning("dropping_existing_tables", count=len(existing))
        drop_all_tables(engine)

    create_all_tables(engine)

    tables = sorted(sa.inspect(engine).get_table_names())
    logger.info("tables_verified", count=len(tables), tables=tables)
    print(f"Database ready with {len(tables)} tables:")
    for table in tables:
        print(f"  - {table}")


if __name__ == "__main__":
    main()
