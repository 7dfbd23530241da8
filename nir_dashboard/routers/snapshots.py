"""
Snapshots router.

Creates, lists, reads and deletes daily snapshots, and exposes the
project status history and the period comparison built on them.
"""

import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from ..config import Settings
from ..deps import client_ip, get_conn, get_dashboard_service, get_settings
from ..exceptions import InvalidInputError, PersistenceError, SourceUnavailableError
from ..schemas import (
    ComparisonResult,
    HistoryEntry,
    Snapshot,
    SnapshotCreated,
    SnapshotDeleted,
    SnapshotInfo,
)
from ..services.activity import record_activity
from ..services.comparison import compare_with_snapshot, resolve_offset
from ..services.dashboard import DashboardService
from ..services.history import get_project_history, get_status_durations
from ..services.snapshots import create_snapshot, delete_snapshot, get_snapshot, list_snapshots

router = APIRouter()


@router.get("/api/snapshots", response_model=List[SnapshotInfo])
def list_all(conn = Depends(get_conn)):
    """Return snapshot metadata, newest first."""
    return list_snapshots(conn)


@router.post("/api/snapshots/create", response_model=SnapshotCreated)
async def create(request: Request,
                 conn = Depends(get_conn),
                 service: DashboardService = Depends(get_dashboard_service),
                 settings: Settings = Depends(get_settings)):
    """Snapshot today's data; a second call on the same day overwrites it."""
    try:
        result = await create_snapshot(conn, service, settings.spreadsheet_id)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    await asyncio.to_thread(record_activity, conn, 'create_snapshot',
                            details={"date_key": result.date_key},
                            ip_address=client_ip(request))
    return result


@router.get("/api/snapshots/compare/{comparison}", response_model=ComparisonResult)
async def compare(comparison: str,
                  conn = Depends(get_conn),
                  service: DashboardService = Depends(get_dashboard_service),
                  settings: Settings = Depends(get_settings)):
    """Compare live data with the snapshot `previousDay`, `weekAgo` or N days back."""
    try:
        offset_days = resolve_offset(comparison)
        current = await service.get_dashboard(settings.spreadsheet_id)
        return await asyncio.to_thread(compare_with_snapshot, conn, current, offset_days)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.get("/api/snapshots/projects/{project_key:path}/history", response_model=List[HistoryEntry])
def project_history(project_key: str, conn = Depends(get_conn)):
    return get_project_history(conn, project_key)


@router.post("/api/snapshots/status-durations", response_model=Dict[str, Optional[int]])
def status_durations(payload: Dict[str, Any] = Body(...), conn = Depends(get_conn)):
    """Days each project has spent in its current status."""
    try:
        return get_status_durations(conn, payload.get("project_keys"))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/api/snapshots/{date_key}", response_model=Snapshot)
def get_one(date_key: str, conn = Depends(get_conn)):
    try:
        snapshot = get_snapshot(conn, date_key)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=e.message)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found for this date")
    return snapshot


@router.delete("/api/snapshots/{date_key}", response_model=SnapshotDeleted)
def delete_one(request: Request, date_key: str, conn = Depends(get_conn)):
    try:
        deleted = delete_snapshot(conn, date_key)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    record_activity(conn, 'delete_snapshot', details={"date_key": date_key},
                    ip_address=client_ip(request))
    return SnapshotDeleted(success=True, date_key=date_key)
