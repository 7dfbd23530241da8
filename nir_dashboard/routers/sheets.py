"""
Sheets router.

Read-only views of the raw spreadsheet, for checking sheet layouts.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_source
from ..exceptions import SourceUnavailableError
from ..schemas import SheetInfo, SheetStats
from ..services.sheets import RawRow, TabularSource, rows_to_records, sheet_stats

router = APIRouter()


@router.get("/api/sheets/info/{source_id}", response_model=List[SheetInfo])
async def sheet_info(source_id: str, source: TabularSource = Depends(get_source)):
    try:
        return await source.list_sheets(source_id)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.get("/api/sheets/objects/{source_id}/{sheet_name}", response_model=List[RawRow])
async def sheet_objects(source_id: str, sheet_name: str,
                        header_row: int = Query(0, ge=0),
                        source: TabularSource = Depends(get_source)):
    """Rows of a sheet keyed by normalized header."""
    try:
        rows = await source.get_rows(source_id, sheet_name)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return rows_to_records(rows, header_row)


@router.get("/api/sheets/stats/{source_id}/{sheet_name}", response_model=SheetStats)
async def stats(source_id: str, sheet_name: str,
                header_row: int = Query(0, ge=0),
                source: TabularSource = Depends(get_source)):
    """Row total and per-column distinct/empty counts."""
    try:
        rows = await source.get_rows(source_id, sheet_name)
    except SourceUnavailableError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return sheet_stats(rows_to_records(rows, header_row))
