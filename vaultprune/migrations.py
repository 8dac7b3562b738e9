"""
Database migrations for vaultprune.

Simple migration system to handle schema changes without requiring Alembic.
"""

import logging
from sqlalchemy import text, inspect
from sqlalchemy.exc import SQLAlchemyError
from vaultprune import db

logger = logging.getLogger(__name__)


# (table, column, DDL) added after the first schema release
COLUMN_MIGRATIONS = [
    ('backup_jobs', 'archive_date_format', 'ALTER TABLE backup_jobs ADD COLUMN archive_date_format VARCHAR(50)'),
    ('transfer_history', 'operation',
     "ALTER TABLE transfer_history ADD COLUMN operation VARCHAR(20) NOT NULL DEFAULT 'replicate'"),
    ('transfer_history', 'instance_key', 'ALTER TABLE transfer_history ADD COLUMN instance_key VARCHAR(500)'),
    ('transfer_history', 'cancellation_requested',
     'ALTER TABLE transfer_history ADD COLUMN cancellation_requested BOOLEAN NOT NULL DEFAULT 0'),
]


def init_database_schema(app):
    """
    Initialize database schema and run migrations.

    Creates tables if they don't exist and adds columns introduced later.
    """
    with app.app_context():
        inspector = inspect(db.engine)
        existing_tables = inspector.get_table_names()

        if not existing_tables:
            logger.info("No tables found - creating initial database schema")
            try:
                db.create_all()
                logger.info("Database schema created successfully")
            except SQLAlchemyError as e:
                # Another worker may have created the schema first
                logger.error(f"Failed to create database schema: {e}")
        else:
            # New tables first, then columns added to existing ones
            db.create_all()
            run_migrations(app, inspect(db.engine))


def run_migrations(app, inspector=None):
    """
    Apply any missing column migrations.

    Returns:
        List of 'table.column' names that were added
    """
    if inspector is None:
        inspector = inspect(db.engine)

    applied = []
    tables = inspector.get_table_names()

    for table, column, ddl in COLUMN_MIGRATIONS:
        if table not in tables:
            continue

        columns = [col['name'] for col in inspector.get_columns(table)]
        if column in columns:
            continue

        logger.info(f"Running migration: Adding {column} column to {table} table")
        try:
            db.session.execute(text(ddl))
            db.session.commit()
            applied.append(f"{table}.{column}")
            logger.info(f"Successfully added {column} column")
        except SQLAlchemyError as e:
            logger.error(f"Failed to add {column} column: {e}")
            db.session.rollback()

    return applied
