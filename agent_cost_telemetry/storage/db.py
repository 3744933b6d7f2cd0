"""
SQLite connection handling for the telemetry ledger.

Each operation opens its own short-lived connection, so nothing is shared
between concurrent callers.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

DEFAULT_DB_PATH = "agent_cost_telemetry.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a connection with name-addressable rows.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection using ``sqlite3.Row`` as row factory
    """
    conn = sqlite3.connect(str(Path(db_path)))
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def connection(db_path: str = DEFAULT_DB_PATH) -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and always closes.

    Any exception rolls back the open transaction and is re-raised.
    """
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
