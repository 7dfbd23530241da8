"""
Activity logging service using sqlite backend.

Records user-facing actions (snapshot creation and deletion, forced
refreshes) into the activity_logs table. Writing the log must never
change the outcome of the action being logged, so write failures are
only reported through the application logger.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..schemas import ActivityCount, ActivityEntry

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def record_activity(conn: sqlite3.Connection, action: str, actor: str = 'system',
                    details: Optional[Dict[str, Any]] = None,
                    ip_address: Optional[str] = None) -> None:
    try:
        conn.execute(
            """
            INSERT INTO activity_logs (actor, action, details, ip_address)
            VALUES (?, ?, ?, ?)
            """,
            (
                actor,
                action,
                json.dumps(details, ensure_ascii=False) if details is not None else None,
                ip_address,
            )
        )
        conn.commit()
    except sqlite3.Error as e:
        logger.warning("Failed to log activity %s: %s", action, e)


def list_activity(conn: sqlite3.Connection, limit: int = 100,
                  action: Optional[str] = None,
                  since: Optional[datetime] = None) -> List[ActivityEntry]:
    """Newest entries first, optionally filtered by action and start time."""
    sql = "SELECT * FROM activity_logs WHERE 1=1"
    params: List[Any] = []
    if action:
        sql += " AND action = ?"
        params.append(action)
    if since is not None:
        # created_at is stored as local "YYYY-MM-DD HH:MM:SS"
        sql += " AND created_at >= ?"
        params.append(since.strftime(TIMESTAMP_FORMAT))
    sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [ActivityEntry(**dict(row)) for row in rows]


def summarize_activity(conn: sqlite3.Connection) -> List[ActivityCount]:
    rows = conn.execute(
        """
        SELECT action, COUNT(*) AS count
        FROM activity_logs
        GROUP BY action
        ORDER BY count DESC, action
        """
    ).fetchall()
    return [ActivityCount(action=row["action"], count=row["count"]) for row in rows]
