"""
SQLite foundation for the document store.
One table per collection; each row holds a JSON document body.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator
from .config import get_db_path, ensure_db_directory

COLLECTIONS = ("visions", "products")

@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or get_db_path()
    ensure_db_directory(path)
    conn = sqlite3.connect(path, timeout=30)
    try:
        yield conn
    finally:
        conn.close()

def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        for collection in COLLECTIONS:
            cursor.execute(f'''
                CREATE TABLE IF NOT EXISTS {collection} (
                    id TEXT PRIMARY KEY,
                    body TEXT NOT NULL,  -- JSON document
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Owner lookups back the duplicate guard and per-user listings
            cursor.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{collection}_user_id "
                f"ON {collection}(json_extract(body, '$.user_id'))"
            )

        conn.commit()

def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            return all(table in table_names for table in COLLECTIONS)
    except Exception:
        return False
