import asyncio
import logging

import pytest

from nir_dashboard.config import SheetMapping
from nir_dashboard.exceptions import SourceUnavailableError
from nir_dashboard.services.normalizer import (
    EntityNormalizer,
    fill_down,
    find_key,
    group_projects,
    normalize_person_name,
    project_context,
    roster_from_records,
    split_member_names,
    status_of,
)
from nir_dashboard.services.sheets import rows_to_records

ROSTER = SheetMapping("Команда", "", 0)


def normalize(source, mappings, roster_sheet=None, concurrency=3):
    normalizer = EntityNormalizer(source, mappings, roster_sheet=roster_sheet, concurrency=concurrency)
    return asyncio.run(normalizer.normalize("sheet-1"))


def test_fill_down_collects_every_member_row(fake_source_cls, make_sheet, web_mapping):
    rows = make_sheet(
        {"name": "Site", "status": "В работе", "end": "01.12.2026", "member": "Иванов Петр", "role": "Разработчик"},
        {"member": "Петров Иван", "role": "Дизайнер"},
        {"member": "Сидорова Анна", "role": "Аналитик"},
        title="Проекты WEB",
    )
    source = fake_source_cls({"Проекты WEB": rows})

    projects = normalize(source, [web_mapping])

    assert len(projects) == 1
    project = projects[0]
    assert project.name == "Site"
    assert project.direction == "Web"
    assert project.status == "В работе"
    assert project.end_date == "01.12.2026"
    assert [m.name for m in project.team] == ["Иванов Петр", "Петров Иван", "Сидорова Анна"]
    assert [m.role for m in project.team] == ["Разработчик", "Дизайнер", "Аналитик"]


def test_rows_before_first_named_row_are_dropped():
    records = [
        {"наименование_проекта": "", "команда_фио": "Ghost Person"},
        {"наименование_проекта": "Site", "команда_фио": "Ivanov P"},
    ]

    projects = group_projects(fill_down(records, "Web"))

    assert [m.name for m in projects[0].team] == ["Ivanov P"]


def test_member_fields_are_not_inherited_by_following_rows():
    records = [
        {"наименование_проекта": "Site", "команда_фио": "Иванов Петр", "роль_в_проекте": "Дизайнер"},
        {"наименование_проекта": "", "команда_фио": "Петров Иван", "роль_в_проекте": ""},
    ]

    team = group_projects(fill_down(records, "Web"))[0].team

    assert team[1].name == "Петров Иван"
    assert team[1].role == ""


def test_same_name_in_two_directions_yields_two_projects(fake_source_cls, make_sheet):
    source = fake_source_cls({
        "Web": make_sheet({"name": "Portal", "member": "Иванов Петр"}),
        "Mobile": make_sheet({"name": "Portal", "member": "Петров Иван"}),
    })
    mappings = [SheetMapping("Web", "Web", 0), SheetMapping("Mobile", "Mobile", 0)]

    projects = normalize(source, mappings)

    keys = [p.project_key for p in projects]
    assert keys == ["Portal|Web", "Portal|Mobile"]
    assert len(set(keys)) == len(keys)


def test_repeated_project_name_merges_into_first_entity():
    records = [
        {"наименование_проекта": "Site", "_этап_проекта_на_01.10": "В работе", "команда_фио": "Иванов Петр"},
        {"наименование_проекта": "Other", "команда_фио": "Петров Иван"},
        {"наименование_проекта": "Site", "_этап_проекта_на_01.10": "Готов", "команда_фио": "Сидорова Анна"},
    ]

    projects = group_projects(fill_down(records, "Web"))

    assert [p.name for p in projects] == ["Site", "Other"]
    assert projects[0].status == "В работе"
    assert [m.name for m in projects[0].team] == ["Иванов Петр", "Сидорова Анна"]


def test_member_name_normalization():
    assert normalize_person_name("Иванов Пётр Сергеевич") == normalize_person_name("Иванов Петр")
    assert normalize_person_name("Иванов Петр") != normalize_person_name("Петров Иван")
    assert normalize_person_name("  Ivanov   P. ") == "Ivanov P"
    assert normalize_person_name("Ёлкин Семён") == "Елкин Семен"
    assert normalize_person_name("") == ""


def test_duplicate_members_collapse_to_one():
    records = [
        {"наименование_проекта": "Site", "команда_фио": "Иванов Пётр Сергеевич", "роль_в_проекте": "Тимлид"},
        {"наименование_проекта": "", "команда_фио": "Иванов Петр", "роль_в_проекте": "Разработчик"},
    ]

    team = group_projects(fill_down(records, "Web"))[0].team

    assert len(team) == 1
    assert team[0].role == "Тимлид"


def test_team_cell_listing_several_people():
    assert split_member_names("Иванов Петр, Петров Иван;\nСидорова Анна") == [
        "Иванов Петр", "Петров Иван", "Сидорова Анна",
    ]
    records = [{"наименование_проекта": "Site", "команда_фио": "Иванов Петр, Петров Иван; Иванов Пётр"}]

    team = group_projects(fill_down(records, "Web"))[0].team

    assert [m.name for m in team] == ["Иванов Петр", "Петров Иван"]


def test_employment_falls_back_to_executor():
    records = [
        {"наименование_проекта": "Site", "_компания_исполнитель": "НИР", "команда_фио": "Иванов Петр"},
        {"наименование_проекта": "", "команда_фио": "Петров Иван", "занятость": "ГПХ"},
    ]

    team = group_projects(fill_down(records, "Web"))[0].team

    assert team[0].employment == "НИР"
    assert team[1].employment == "ГПХ"


def test_roster_role_overrides_inline_role(fake_source_cls, make_sheet):
    source = fake_source_cls({
        "Web": make_sheet({"name": "Site", "member": "Иванов Петр", "role": "Разработчик"}),
        "Команда": [["ФИО", "Роль"], ["Иванов Пётр Сергеевич", "Тимлид"]],
    })

    projects = normalize(source, [SheetMapping("Web", "Web", 0)], roster_sheet=ROSTER)

    assert projects[0].team[0].role == "Тимлид"


def test_unreadable_roster_falls_back_to_inline_roles(fake_source_cls, make_sheet, caplog):
    source = fake_source_cls(
        {"Web": make_sheet({"name": "Site", "member": "Иванов Петр", "role": "Разработчик"})},
        failing={"Команда"},
    )

    with caplog.at_level(logging.WARNING):
        projects = normalize(source, [SheetMapping("Web", "Web", 0)], roster_sheet=ROSTER)

    assert projects[0].team[0].role == "Разработчик"
    assert "Roster sheet unavailable" in caplog.text


def test_roster_from_records_keeps_first_role():
    records = [
        {"фио": "Иванов Петр", "роль": "Тимлид"},
        {"фио": "Иванов Пётр Сергеевич", "роль": "Разработчик"},
        {"фио": "Петров Иван", "роль": ""},
    ]

    assert roster_from_records(records) == {"Иванов Петр": "Тимлид"}


def test_failing_project_sheet_aborts_normalization(fake_source_cls, make_sheet):
    source = fake_source_cls(
        {"Web": make_sheet({"name": "Site"}), "Mobile": make_sheet({"name": "App"})},
        failing={"Mobile"},
    )
    mappings = [SheetMapping("Web", "Web", 0), SheetMapping("Mobile", "Mobile", 0)]

    with pytest.raises(SourceUnavailableError):
        normalize(source, mappings)


def test_sheets_are_fetched_in_bounded_batches(fake_source_cls, make_sheet):
    names = [f"Sheet {i}" for i in range(5)]
    source = fake_source_cls({name: make_sheet({"name": name}) for name in names})
    mappings = [SheetMapping(name, name, 0) for name in names]

    projects = normalize(source, mappings, concurrency=2)

    assert sorted(source.calls) == sorted(names)
    assert source.max_active == 2
    assert len(projects) == 5


def test_header_row_offset_skips_title_row():
    rows = [
        ["Проекты WEB"],
        ["Наименование проекта", "Команда ФИО"],
        ["Site", "Иванов Петр"],
    ]

    records = rows_to_records(rows, header_row_index=1)

    assert records == [{"наименование_проекта": "Site", "команда_фио": "Иванов Петр"}]


def test_status_column_matched_by_prefix():
    row = {"наименование_проекта": "Site", "_этап_проекта_на_15.09": "Пилот"}

    assert find_key(row, lambda k: k.startswith("_этап")) == "_этап_проекта_на_15.09"
    assert status_of(row) == "Пилот"


def test_status_falls_back_to_plain_column():
    assert status_of({"статус_проекта": "  В работе "}) == "В работе"


def test_name_header_variants():
    context = project_context({"название_проекта": " CRM ", "итоговая_стоимость": "100"}, "Web")

    assert context.name == "CRM"
    assert context.total_cost == "100"
    assert project_context({"название_проекта": ""}, "Web") is None
