"""Activity log router."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_conn
from ..schemas import ActivityCount, ActivityEntry
from ..services.activity import list_activity, summarize_activity

router = APIRouter()


@router.get("/api/logs", response_model=List[ActivityEntry])
def get_logs(limit: int = Query(100, ge=1, le=1000),
             action: Optional[str] = Query(None),
             since: Optional[datetime] = Query(None),
             conn = Depends(get_conn)):
    return list_activity(conn, limit=limit, action=action, since=since)


@router.get("/api/logs/summary", response_model=List[ActivityCount])
def get_summary(conn = Depends(get_conn)):
    """Number of logged entries per action, most frequent first."""
    return summarize_activity(conn)
