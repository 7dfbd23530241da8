import asyncio
import sqlite3

import pytest

from nir_dashboard.config import SheetMapping
from nir_dashboard.db import init_schema
from nir_dashboard.exceptions import SourceUnavailableError
from nir_dashboard.schemas import SheetInfo


# Header text as it appears in the tracking spreadsheet.
COLUMNS = {
    "name": "Наименование проекта",
    "status": "\nЭтап проекта на 01.10",
    "phase": "Фаза проекта",
    "type": "Тип проекта",
    "start": "Начало проекта",
    "end": "Завершение проекта",
    "customer": "\nЗаказчик",
    "executor": "\nКомпания исполнитель",
    "total_cost": "Итоговая стоимость",
    "payment": "Статус оплаты",
    "member": "Команда ФИО",
    "role": "Роль в проекте",
}


class FakeSource:
    """In-memory TabularSource that records how many fetches overlap."""

    def __init__(self, sheets, failing=()):
        self.sheets = dict(sheets)
        self.failing = set(failing)
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def list_sheets(self, source_id):
        if "*" in self.failing:
            raise SourceUnavailableError("source is down")
        return [
            SheetInfo(name=name, row_count=len(rows), column_count=max((len(r) for r in rows), default=0))
            for name, rows in self.sheets.items()
        ]

    async def get_rows(self, source_id, sheet_name):
        self.calls.append(sheet_name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if sheet_name in self.failing or "*" in self.failing or sheet_name not in self.sheets:
                raise SourceUnavailableError(f"Failed to fetch sheet '{sheet_name}'")
            return self.sheets[sheet_name]
        finally:
            self.active -= 1


def build_sheet(*records, title=None):
    """Rows for a project sheet: optional title row, header row, then records."""
    header = list(COLUMNS.values())
    rows = [[rec.get(field, "") for field in COLUMNS] for rec in records]
    return ([[title]] if title else []) + [header] + rows


@pytest.fixture
def make_sheet():
    return build_sheet


@pytest.fixture
def fake_source_cls():
    return FakeSource


@pytest.fixture
def web_mapping():
    return SheetMapping("Проекты WEB", "Web", 1)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    connection.row_factory = sqlite3.Row
    init_schema(connection)
    yield connection
    connection.close()
