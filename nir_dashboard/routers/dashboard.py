"""
Dashboard router.

Serves the aggregated dashboard for a spreadsheet and lets clients drop
the cached copy.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..deps import client_ip, get_conn, get_dashboard_service
from ..exceptions import SourceUnavailableError
from ..schemas import DashboardData
from ..services.activity import record_activity
from ..services.dashboard import DashboardService

router = APIRouter()


@router.get("/api/dashboard/{source_id}", response_model=DashboardData)
async def get_dashboard(request: Request,
                        source_id: str,
                        force_refresh: bool = Query(False),
                        service: DashboardService = Depends(get_dashboard_service),
                        conn = Depends(get_conn)):
    """Return summary, charts and projects, from cache when fresh."""
    try:
        data = await service.get_dashboard(source_id, force_refresh=force_refresh)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)
    if force_refresh:
        await asyncio.to_thread(record_activity, conn, 'refresh_dashboard',
                                details={"source_id": source_id},
                                ip_address=client_ip(request))
    return data


@router.delete("/api/dashboard/{source_id}/cache")
def invalidate_cache(source_id: str, service: DashboardService = Depends(get_dashboard_service)):
    service.invalidate(source_id)
    return {"success": True, "source_id": source_id}
