"""
SQLite connection handling for the local-first sheet store.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import DB_PATH, UPSTREAM_TIMEOUT_SEC, ensure_db_directory


@contextmanager
def get_db(db_path: str = None, timeout: float = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection with a bounded lock wait."""
    conn = sqlite3.connect(db_path or DB_PATH, timeout=timeout or UPSTREAM_TIMEOUT_SEC)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the database with the sheet_rows table."""
    ensure_db_directory(db_path)

    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # One row per sheet row; seq preserves insertion order, cells hold a JSON list
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sheet_rows (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                cells TEXT NOT NULL
            )
        ''')

        conn.commit()


def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return 'sheet_rows' in table_names
    except sqlite3.Error:
        return False
