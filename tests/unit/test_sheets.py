import asyncio
from datetime import datetime

import pytest
from openpyxl import Workbook

from nir_dashboard.exceptions import SourceUnavailableError
from nir_dashboard.services.sheets import (
    WorkbookSource,
    cell_to_text,
    normalize_header,
    rows_to_records,
    sheet_stats,
)


@pytest.mark.parametrize("header, expected", [
    ("Наименование проекта", "наименование_проекта"),
    ("\nЭтап проекта на 01.10", "_этап_проекта_на_01.10"),
    ("Команда  ФИО", "команда_фио"),
    ("", ""),
])
def test_normalize_header(header, expected):
    assert normalize_header(header) == expected


def test_rows_to_records_pads_short_rows():
    records = rows_to_records([["A", "B", "C"], ["1"], ["1", "2", "3"]])

    assert records == [{"a": "1", "b": "", "c": ""}, {"a": "1", "b": "2", "c": "3"}]


def test_rows_to_records_needs_header_and_data():
    assert rows_to_records([]) == []
    assert rows_to_records([["A"]]) == []
    assert rows_to_records([["Title"], ["A"]], header_row_index=1) == []


def test_cell_to_text():
    assert cell_to_text(None) == ""
    assert cell_to_text(150000.0) == "150000"
    assert cell_to_text(12.5) == "12.5"
    assert cell_to_text(datetime(2026, 12, 1)) == "01.12.2026"


@pytest.fixture
def workbook_dir(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.title = "Проекты WEB"
    ws.append(["Проекты WEB"])
    ws.append(["Наименование проекта", "Завершение проекта", "Итоговая стоимость"])
    ws.append(["Site", datetime(2026, 12, 1), 1500])
    wb.create_sheet("Команда").append(["ФИО", "Роль"])
    wb.save(tmp_path / "sheet-1.xlsx")
    return tmp_path


def test_workbook_source_reads_rows(workbook_dir):
    source = WorkbookSource(str(workbook_dir))

    rows = asyncio.run(source.get_rows("sheet-1", "Проекты WEB"))

    assert rows_to_records(rows, header_row_index=1) == [{
        "наименование_проекта": "Site",
        "завершение_проекта": "01.12.2026",
        "итоговая_стоимость": "1500",
    }]


def test_workbook_source_lists_sheets(workbook_dir):
    infos = asyncio.run(WorkbookSource(str(workbook_dir)).list_sheets("sheet-1"))

    assert [i.name for i in infos] == ["Проекты WEB", "Команда"]


def test_workbook_source_missing_sheet_or_file(workbook_dir):
    source = WorkbookSource(str(workbook_dir))

    with pytest.raises(SourceUnavailableError):
        asyncio.run(source.get_rows("sheet-1", "Nope"))
    with pytest.raises(SourceUnavailableError):
        asyncio.run(source.get_rows("missing", "Проекты WEB"))


def test_sheet_stats_counts_distinct_and_empty_values():
    records = rows_to_records([
        ["Проект", "Статус"],
        ["Site", "Готов"],
        ["Site", ""],
        ["App", "Готов"],
        ["", "В работе"],
    ])

    stats = sheet_stats(records)

    assert stats.total == 4
    assert [(c.name, c.unique_values, c.empty_count) for c in stats.columns] == [
        ("проект", 2, 1),
        ("статус", 2, 1),
    ]


def test_sheet_stats_of_empty_sheet():
    stats = sheet_stats([])

    assert stats.total == 0
    assert stats.columns == []
