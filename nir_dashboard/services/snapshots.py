"""
Snapshot store for sqlite backend.

A snapshot is the full dashboard bundle (summary, charts, projects) frozen
for one calendar day. The date key is the local date, so every creation
on the same day targets the same row: the first call inserts it and later
calls overwrite it in place. Creating a snapshot also records the
per-project status history for that day.
"""

import asyncio
import json
import logging
import sqlite3
from datetime import date, datetime
from typing import List, Optional

from ..db import put_if_absent_else_replace
from ..exceptions import PersistenceError
from ..schemas import DashboardData, Snapshot, SnapshotCreated, SnapshotInfo
from .dashboard import DashboardService
from .dates import date_key_for, format_display_date, parse_date_key
from .history import record_history

logger = logging.getLogger(__name__)


def _dumps(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def create_or_update_snapshot(
    conn: sqlite3.Connection,
    date_key: str,
    data: DashboardData,
    now: Optional[datetime] = None,
) -> bool:
    """Store the bundle under `date_key`, replacing any row for that day.

    Returns True when an existing snapshot was overwritten.
    """
    parse_date_key(date_key)
    now = now or datetime.now()
    try:
        existed = conn.execute(
            "SELECT 1 FROM snapshots WHERE date_key = ?", (date_key,)
        ).fetchone() is not None
        put_if_absent_else_replace(
            conn,
            "snapshots",
            ("date_key",),
            {
                "date_key": date_key,
                "created_at": now.isoformat(timespec="seconds"),
                "summary": _dumps(data.summary.model_dump()),
                "charts": _dumps(data.charts.model_dump()),
                "projects": _dumps([p.model_dump() for p in data.projects]),
            },
        )
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceError(f"Failed to store snapshot {date_key}: {e}") from e
    logger.info("Snapshot %s for %s", "updated" if existed else "created", date_key)
    return existed


def get_snapshot(conn: sqlite3.Connection, date_key: str) -> Optional[Snapshot]:
    parse_date_key(date_key)
    row = conn.execute("SELECT * FROM snapshots WHERE date_key = ?", (date_key,)).fetchone()
    if row is None:
        return None
    return Snapshot(
        date_key=row["date_key"],
        display_date=format_display_date(row["date_key"]),
        created_at=row["created_at"],
        summary=json.loads(row["summary"]),
        charts=json.loads(row["charts"]),
        projects=json.loads(row["projects"]),
    )


def list_snapshots(conn: sqlite3.Connection, today: Optional[date] = None) -> List[SnapshotInfo]:
    """Snapshot metadata, newest first, flagging the one for today."""
    current_key = date_key_for(today or date.today())
    rows = conn.execute(
        "SELECT date_key, created_at FROM snapshots ORDER BY date_key DESC"
    ).fetchall()
    return [
        SnapshotInfo(
            date_key=row["date_key"],
            display_date=format_display_date(row["date_key"]),
            created_at=row["created_at"],
            is_current=row["date_key"] == current_key,
        )
        for row in rows
    ]


def delete_snapshot(conn: sqlite3.Connection, date_key: str) -> bool:
    """Delete the snapshot and its history rows. Returns whether a snapshot existed."""
    parse_date_key(date_key)
    try:
        result = conn.execute("DELETE FROM snapshots WHERE date_key = ?", (date_key,))
        conn.execute("DELETE FROM project_history WHERE week_start = ?", (date_key,))
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceError(f"Failed to delete snapshot {date_key}: {e}") from e
    deleted = result.rowcount > 0
    if deleted:
        logger.info("Deleted snapshot for %s", date_key)
    return deleted


async def create_snapshot(
    conn: sqlite3.Connection,
    dashboard: DashboardService,
    source_id: str,
    now: Optional[datetime] = None,
) -> SnapshotCreated:
    """Build a fresh bundle and persist it with its project history.

    The snapshot row is written before the history rows; if history
    recording fails the snapshot stays and a rerun repairs the history.
    Both writes run on a worker thread, so `conn` must be opened with
    `check_same_thread=False`.
    """
    now = now or datetime.now()
    data = await dashboard.build(source_id)
    date_key = date_key_for(now.date())
    await asyncio.to_thread(create_or_update_snapshot, conn, date_key, data, now)
    await asyncio.to_thread(record_history, conn, data.projects, date_key, now)
    return SnapshotCreated(success=True, date_key=date_key, display_date=format_display_date(date_key))
