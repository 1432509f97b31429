#!/usr/bin/env python3
"""
Add the row_key column and the one-submission-per-row unique index to
form_submissions on databases created before they existed
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bbos.core.database import engine
from sqlalchemy import inspect, text
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TABLE = "form_submissions"
INDEX_NAME = "uq_form_submission"


def column_exists(conn, column_name):
    return any(col["name"] == column_name for col in inspect(conn).get_columns(TABLE))


def index_exists(conn, index_name):
    inspector = inspect(conn)
    names = {ix["name"] for ix in inspector.get_indexes(TABLE)}
    names.update(uc["name"] for uc in inspector.get_unique_constraints(TABLE))
    return index_name in names


def find_duplicates(conn):
    """Rows that would violate the index; they must be resolved by hand first"""
    result = conn.execute(text(f"""
        SELECT form_id, schedule_id, submitted_by, row_key, COUNT(*) AS copies
        FROM {TABLE}
        GROUP BY form_id, schedule_id, submitted_by, row_key
        HAVING COUNT(*) > 1
    """))
    return result.fetchall()


def add_unique_index():
    try:
        with engine.connect() as conn:
            if column_exists(conn, "row_key"):
                logger.info("Column row_key already exists, skipping...")
            else:
                logger.info("Adding column row_key...")
                conn.execute(text(f"ALTER TABLE {TABLE} ADD COLUMN row_key VARCHAR(500) NOT NULL DEFAULT ''"))
                conn.commit()
                logger.info("Column row_key added successfully!")

            if index_exists(conn, INDEX_NAME):
                logger.info(f"Index {INDEX_NAME} already exists, skipping...")
                return True

            duplicates = find_duplicates(conn)
            if duplicates:
                for row in duplicates:
                    logger.error(
                        f"Duplicate submissions: form {row.form_id}, schedule {row.schedule_id}, "
                        f"user {row.submitted_by}, row '{row.row_key}' ({row.copies} copies)"
                    )
                logger.error(f"Resolve {len(duplicates)} duplicate groups before adding {INDEX_NAME}")
                return False

            logger.info(f"Adding index {INDEX_NAME}...")
            conn.execute(text(f"""
                CREATE UNIQUE INDEX {INDEX_NAME}
                ON {TABLE}(form_id, schedule_id, submitted_by, row_key)
            """))
            conn.commit()
            logger.info(f"Index {INDEX_NAME} added successfully!")
            return True
    except Exception as e:
        logger.error(f"Error adding submission index: {str(e)}", exc_info=True)
        return False


if __name__ == "__main__":
    success = add_unique_index()
    sys.exit(0 if success else 1)
