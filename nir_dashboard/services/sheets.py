"""
Tabular source adapters.

A source exposes the sheets of one spreadsheet as rows of string cells.
Two adapters are provided: `GoogleSheetsSource` reads a live Google
spreadsheet through gspread, `WorkbookSource` reads `<source_id>.xlsx`
files from a directory through openpyxl. Both are asynchronous from the
caller's point of view; the blocking client libraries run on worker
threads.

Any failure to deliver a sheet is raised as `SourceUnavailableError`.
"""

import asyncio
import json
import logging
import os
import re
import time
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import gspread
from google.oauth2.service_account import Credentials
from gspread.exceptions import APIError
from openpyxl import load_workbook

from ..exceptions import SourceUnavailableError
from ..schemas import ColumnStats, SheetInfo, SheetStats

logger = logging.getLogger(__name__)

RawRow = Dict[str, str]

_WHITESPACE = re.compile(r"\s+")


class TabularSource(Protocol):
    async def list_sheets(self, source_id: str) -> List[SheetInfo]:
        ...

    async def get_rows(self, source_id: str, sheet_name: str) -> List[List[str]]:
        ...


def normalize_header(header: str) -> str:
    """Lower-case a header and replace every whitespace run with `_`.

    Leading whitespace is kept as an underscore, so a header whose text
    starts on a new line becomes `_<header>`.
    """
    return _WHITESPACE.sub("_", (header or "").lower())


def rows_to_records(rows: List[List[str]], header_row_index: int = 0) -> List[RawRow]:
    """Turn raw rows into header-keyed records.

    Rows above `header_row_index` (sheet titles and the like) are dropped.
    Short rows are padded with empty strings.
    """
    data = rows[header_row_index:]
    if len(data) < 2:
        return []
    headers = [normalize_header(h) for h in data[0]]
    records: List[RawRow] = []
    for row in data[1:]:
        record = {}
        for index, header in enumerate(headers):
            value = row[index] if index < len(row) else ""
            record[header] = "" if value is None else str(value)
        records.append(record)
    return records


def sheet_stats(records: List[RawRow]) -> SheetStats:
    """Row count plus distinct and empty value counts for every column."""
    if not records:
        return SheetStats(total=0, columns=[])
    columns = []
    for name in records[0]:
        values = [record.get(name, "") for record in records]
        columns.append(ColumnStats(
            name=name,
            unique_values=len({v for v in values if v}),
            empty_count=sum(1 for v in values if not v),
        ))
    return SheetStats(total=len(records), columns=columns)


class GoogleSheetsSource:
    """Read spreadsheet tabs through the Google Sheets API.

    The gspread client is authorized on first use, so constructing the
    source does not require credentials to be present.
    """

    SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

    def __init__(self, credentials_path: Optional[str] = None):
        self._credentials_path = credentials_path
        self._client: Optional[gspread.Client] = None

    def _resolve_credentials_path(self) -> str:
        if self._credentials_path and os.path.isfile(self._credentials_path):
            return self._credentials_path
        candidates = [
            Path.cwd() / "credentials" / "service_account.json",
            Path.cwd() / "service_account.json",
        ]
        for p in candidates:
            if p.is_file():
                return str(p)
        raise FileNotFoundError(
            "service_account.json not found. Set GSHEETS_CREDENTIALS or GOOGLE_APPLICATION_CREDENTIALS.")

    def _get_client(self) -> gspread.Client:
        if self._client is None:
            with open(self._resolve_credentials_path(), encoding="utf-8") as f:
                info = json.load(f)
            creds = Credentials.from_service_account_info(info, scopes=self.SCOPES)
            self._client = gspread.authorize(creds)
        return self._client

    @staticmethod
    def _with_backoff(fn, *, tries: int = 5, base: float = 0.6, factor: float = 2.0):
        """Retry on Sheets 429 rate limits."""
        delay = base
        for attempt in range(tries):
            try:
                return fn()
            except APIError as e:
                code = getattr(getattr(e, "response", None), "status_code", None)
                if code == 429 or "quota" in str(e).lower() or "rate" in str(e).lower():
                    if attempt == tries - 1:
                        raise
                    time.sleep(delay)
                    delay *= factor
                    continue
                raise

    def _list_sheets_sync(self, source_id: str) -> List[SheetInfo]:
        sh = self._with_backoff(lambda: self._get_client().open_by_key(source_id))
        return [
            SheetInfo(name=ws.title, row_count=ws.row_count, column_count=ws.col_count)
            for ws in sh.worksheets()
        ]

    def _get_rows_sync(self, source_id: str, sheet_name: str) -> List[List[str]]:
        sh = self._with_backoff(lambda: self._get_client().open_by_key(source_id))
        ws = sh.worksheet(sheet_name)
        return self._with_backoff(ws.get_all_values) or []

    async def list_sheets(self, source_id: str) -> List[SheetInfo]:
        try:
            return await asyncio.to_thread(self._list_sheets_sync, source_id)
        except Exception as e:
            logger.error("Error listing sheets for %s: %s", source_id, e)
            raise SourceUnavailableError(f"Failed to list sheets of {source_id}: {e}") from e

    async def get_rows(self, source_id: str, sheet_name: str) -> List[List[str]]:
        try:
            return await asyncio.to_thread(self._get_rows_sync, source_id, sheet_name)
        except Exception as e:
            logger.error("Error fetching sheet '%s' from %s: %s", sheet_name, source_id, e)
            raise SourceUnavailableError(f"Failed to fetch sheet '{sheet_name}': {e}") from e


def cell_to_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%d.%m.%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class WorkbookSource:
    """Read sheets from `<workbook_dir>/<source_id>.xlsx` files."""

    def __init__(self, workbook_dir: str):
        self.workbook_dir = Path(workbook_dir)

    def _path(self, source_id: str) -> Path:
        return self.workbook_dir / f"{source_id}.xlsx"

    def _list_sheets_sync(self, source_id: str) -> List[SheetInfo]:
        wb = load_workbook(self._path(source_id), read_only=True, data_only=True)
        try:
            return [
                SheetInfo(name=ws.title, row_count=ws.max_row or 0, column_count=ws.max_column or 0)
                for ws in wb.worksheets
            ]
        finally:
            wb.close()

    def _get_rows_sync(self, source_id: str, sheet_name: str) -> List[List[str]]:
        wb = load_workbook(self._path(source_id), read_only=True, data_only=True)
        try:
            if sheet_name not in wb.sheetnames:
                raise KeyError(f"sheet {sheet_name!r} is missing")
            ws = wb[sheet_name]
            return [[cell_to_text(v) for v in row] for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    async def list_sheets(self, source_id: str) -> List[SheetInfo]:
        try:
            return await asyncio.to_thread(self._list_sheets_sync, source_id)
        except Exception as e:
            raise SourceUnavailableError(f"Failed to open workbook {source_id}: {e}") from e

    async def get_rows(self, source_id: str, sheet_name: str) -> List[List[str]]:
        try:
            return await asyncio.to_thread(self._get_rows_sync, source_id, sheet_name)
        except Exception as e:
            raise SourceUnavailableError(f"Failed to read sheet '{sheet_name}' of {source_id}: {e}") from e
