"""
Lightweight SQLite database access module.

This module provides helper functions to open database connections and
initialize the schema used by the snapshot store, the project history
tracker and the activity log. It uses Python's built-in sqlite3 module;
each connection uses a row factory so that query results can be accessed
like dictionaries.

Large fields (summary, charts, project lists, per-project snapshots) are
stored as JSON text and decoded on read, so the shape of a project entity
can evolve without schema migrations.
"""

import os
import sqlite3
from typing import Any, Dict, Sequence

DEFAULT_DB_PATH = os.path.normpath(os.path.join(os.getcwd(), "data", "dashboard.db"))


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a connection to the SQLite database.

    The connection is opened with `check_same_thread=False` because FastAPI
    runs synchronous handlers on a thread pool while the connection is
    created in the dependency. Each request obtains its own connection, so
    no connection is shared between concurrent requests.
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize database tables if they do not exist."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = get_connection(db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()


def init_schema(conn: sqlite3.Connection) -> None:
    c = conn.cursor()
    # one row per calendar day
    c.execute(
        """
        CREATE TABLE IF NOT EXISTS snapshots (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date_key TEXT UNIQUE NOT NULL,
            created_at TEXT NOT NULL,
            summary TEXT NOT NULL,
            charts TEXT NOT NULL,
            projects TEXT NOT NULL
        )
        """
    )
    # per-project status track, one row per project per snapshot date
    c.execute(
        """
        CREATE TABLE IF NOT EXISTS project_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_key TEXT NOT NULL,
            week_start TEXT NOT NULL,
            status TEXT,
            status_changed_at TEXT,
            previous_status TEXT,
            snapshot TEXT NOT NULL,
            UNIQUE (project_key, week_start)
        )
        """
    )
    c.execute(
        """
        CREATE TABLE IF NOT EXISTS activity_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            actor TEXT NOT NULL,
            action TEXT NOT NULL,
            details TEXT,
            ip_address TEXT,
            created_at TEXT NOT NULL DEFAULT (DATETIME('now', 'localtime'))
        )
        """
    )
    c.execute("CREATE INDEX IF NOT EXISTS idx_history_project ON project_history(project_key)")
    c.execute("CREATE INDEX IF NOT EXISTS idx_history_week ON project_history(week_start)")
    conn.commit()


def put_if_absent_else_replace(
    conn: sqlite3.Connection,
    table: str,
    key_columns: Sequence[str],
    values: Dict[str, Any],
) -> None:
    """Insert a row, or overwrite the non-key columns of the row sharing its key.

    The existing row keeps its primary key, so an upsert never creates a
    second row for the same unique key. The caller owns the transaction.
    """
    columns = list(values.keys())
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(
        f"{col} = excluded.{col}" for col in columns if col not in key_columns
    )
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT ({', '.join(key_columns)}) DO UPDATE SET {updates}"
    )
    conn.execute(sql, [values[col] for col in columns])
