"""
Database initialization script.

Run this to create the database tables:
    python -m app.db.init_db
"""

import logging

from app.db.database import init_db, engine

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info(f"Initializing database at {engine.url}...")
    init_db()
    logger.info("Database initialization complete!")
