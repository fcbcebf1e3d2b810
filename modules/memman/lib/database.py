"""Shared SQLite connection factory.

Usage:
    conn = open_connection(db_path)
    with transaction(conn):
        conn.execute("INSERT ...")
    # Committed on clean exit, rolled back (and re-raised) on exception.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

MEMORY_DB = ":memory:"


def open_connection(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open a configured connection with Row factory and FK enforcement.

    File databases get their parent directory created and run in WAL mode.
    The connection may be shared across threads; callers serialize access.
    """
    path = str(db_path)
    if path != MEMORY_DB:
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        path = str(Path(path).expanduser())
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA busy_timeout = 30000")
    if path != MEMORY_DB:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA temp_store = MEMORY")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Commit on clean exit, roll back on exception and re-raise."""
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
