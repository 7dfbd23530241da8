"""
Project status history.

Every snapshot writes one row per project (keyed by project key and
snapshot date) holding its status and the moment that status was first
observed. The moment is carried forward from the latest earlier row while
the status stays the same, however many days lie between the two rows,
and is reset to the snapshot time when the status changes.

A project seen for the first time starts its status clock at the
snapshot time. Rows backfilled later for older dates do not move that
clock back.
"""

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..db import put_if_absent_else_replace
from ..exceptions import InvalidInputError, PersistenceError
from ..schemas import HistoryEntry, ProjectEntity
from .dates import format_display_date, parse_date_key

logger = logging.getLogger(__name__)

# sqlite's default limit on bound parameters is 999
_BATCH_SIZE = 500


def status_key(status: Optional[str]) -> str:
    """Comparable form of a status label (case and spacing ignored)."""
    return " ".join((status or "").split()).casefold()


def find_prior_record(conn: sqlite3.Connection, project_key: str, date_key: str) -> Optional[sqlite3.Row]:
    """Latest history row for the project strictly before `date_key`."""
    return conn.execute(
        """
        SELECT week_start, status, status_changed_at
        FROM project_history
        WHERE project_key = ? AND week_start < ?
        ORDER BY week_start DESC
        LIMIT 1
        """,
        (project_key, date_key),
    ).fetchone()


def resolve_status_change(
    prior: Optional[sqlite3.Row], current_status: str, now_iso: str
) -> Tuple[str, Optional[str]]:
    """Return (status_changed_at, previous_status) for the current status."""
    if prior is None:
        return now_iso, None
    previous = prior["status"] or ""
    if status_key(previous) != status_key(current_status):
        return now_iso, previous
    return prior["status_changed_at"] or now_iso, previous


def record_history(
    conn: sqlite3.Connection,
    projects: Sequence[ProjectEntity],
    date_key: str,
    now: Optional[datetime] = None,
) -> int:
    """Upsert one history row per project for `date_key`.

    A failure on one project does not stop the others; the failed keys are
    reported in a `PersistenceError` once the rest are committed.
    """
    parse_date_key(date_key)
    now_iso = (now or datetime.now()).isoformat(timespec="seconds")
    failed: List[str] = []
    for project in projects:
        key = project.project_key
        try:
            prior = find_prior_record(conn, key, date_key)
            changed_at, previous = resolve_status_change(prior, project.status, now_iso)
            put_if_absent_else_replace(
                conn,
                "project_history",
                ("project_key", "week_start"),
                {
                    "project_key": key,
                    "week_start": date_key,
                    "status": project.status or "",
                    "status_changed_at": changed_at,
                    "previous_status": previous,
                    "snapshot": json.dumps(project.model_dump(), ensure_ascii=False),
                },
            )
        except sqlite3.Error:
            logger.exception("Failed to record history for %s", key)
            failed.append(key)
    try:
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"Failed to commit history for {date_key}: {e}") from e
    if failed:
        raise PersistenceError(
            f"History not recorded for {len(failed)} of {len(projects)} projects", failed
        )
    return len(projects)


def get_project_history(conn: sqlite3.Connection, project_key: str) -> List[HistoryEntry]:
    rows = conn.execute(
        """
        SELECT week_start, status, status_changed_at, previous_status, snapshot
        FROM project_history
        WHERE project_key = ?
        ORDER BY week_start DESC
        """,
        (project_key,),
    ).fetchall()
    return [
        HistoryEntry(
            week_start=row["week_start"],
            display_date=format_display_date(row["week_start"]),
            status=row["status"] or "",
            status_changed_at=row["status_changed_at"],
            previous_status=row["previous_status"],
            snapshot=json.loads(row["snapshot"]),
        )
        for row in rows
    ]


def days_since(changed_at: Optional[str], today: date) -> Optional[int]:
    """Calendar days between the change date and today (midnight to midnight)."""
    if not changed_at:
        return None
    try:
        changed = datetime.fromisoformat(changed_at)
    except ValueError:
        logger.warning("Unreadable status_changed_at %r", changed_at)
        return None
    return (today - changed.date()).days


def get_status_duration(
    conn: sqlite3.Connection, project_key: str, today: Optional[date] = None
) -> Optional[int]:
    row = conn.execute(
        """
        SELECT status_changed_at FROM project_history
        WHERE project_key = ?
        ORDER BY week_start DESC
        LIMIT 1
        """,
        (project_key,),
    ).fetchone()
    if row is None:
        return None
    return days_since(row["status_changed_at"], today or date.today())


def get_status_durations(
    conn: sqlite3.Connection, project_keys, today: Optional[date] = None
) -> Dict[str, Optional[int]]:
    """Durations for many projects; keys without history map to None."""
    if not isinstance(project_keys, (list, tuple)) or not all(isinstance(k, str) for k in project_keys):
        raise InvalidInputError("project_keys must be an array of strings")
    today = today or date.today()
    durations: Dict[str, Optional[int]] = {key: None for key in project_keys}
    keys = list(durations)
    for start in range(0, len(keys), _BATCH_SIZE):
        chunk = keys[start:start + _BATCH_SIZE]
        placeholders = ", ".join("?" for _ in chunk)
        rows = conn.execute(
            f"""
            SELECT h.project_key, h.status_changed_at
            FROM project_history AS h
            WHERE h.project_key IN ({placeholders})
              AND h.week_start = (
                SELECT MAX(week_start) FROM project_history WHERE project_key = h.project_key
              )
            """,
            chunk,
        ).fetchall()
        for row in rows:
            durations[row["project_key"]] = days_since(row["status_changed_at"], today)
    return durations
