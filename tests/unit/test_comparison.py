from datetime import date

import pytest

from nir_dashboard.exceptions import InvalidInputError
from nir_dashboard.schemas import ProjectEntity
from nir_dashboard.services.aggregator import aggregate
from nir_dashboard.services.comparison import compare_with_snapshot, load_entities, resolve_offset
from nir_dashboard.services.snapshots import create_or_update_snapshot

TODAY = date(2026, 10, 19)


def project(name, direction="Web", **fields):
    return ProjectEntity(name=name, direction=direction, **fields)


def test_missing_snapshot_is_reported_as_unavailable(conn):
    current = aggregate([project("A")], today=TODAY)

    result = compare_with_snapshot(conn, current, 1, today=TODAY)

    assert result.available is False
    assert result.comparison_date == "2026-10-18"
    assert result.changes is None
    assert "2026-10-18" in result.message


def test_deltas_against_week_old_snapshot(conn):
    historical = [
        project("A", total_cost="100", type="Коммерческий", executor="НИР"),
        project("B", direction="Mobile", total_cost="50", payment_status="Оплачено", end_date="01.09.2026"),
    ]
    current = [
        project("A", total_cost="300", type="Коммерческий", executor="НИР", payment_status="Оплачено"),
        project("C", total_cost="20", type="Внутренний", executor="ИТЭ-29", end_date="25.10.2026"),
    ]
    create_or_update_snapshot(conn, "2026-10-12", aggregate(historical, today=date(2026, 10, 12)))

    result = compare_with_snapshot(conn, aggregate(current, today=TODAY), 7, today=TODAY)

    assert result.available is True
    assert result.comparison_date == "2026-10-12"
    changes = result.changes
    assert changes.projects.total == 0
    assert changes.projects.by_direction == {"Mobile": -1, "Web": 1}
    assert changes.projects.by_type.internal == 1
    assert changes.projects.by_type.commercial == 0
    assert changes.projects.by_company.ite29 == 1
    assert changes.projects.by_company.nir == 0
    assert changes.finances.total == pytest.approx(170)
    assert changes.finances.paid == pytest.approx(250)
    assert changes.finances.in_work == pytest.approx(-80)
    assert changes.deadlines.on_track == 1
    assert changes.deadlines.overdue_large == -1


def test_historical_side_is_recomputed_from_stored_projects(conn):
    create_or_update_snapshot(conn, "2026-10-18", aggregate([project("A")], today=TODAY))
    conn.execute("UPDATE snapshots SET charts = '{}', summary = '{}'")
    conn.commit()

    result = compare_with_snapshot(conn, aggregate([project("A"), project("B")], today=TODAY), 1, today=TODAY)

    assert result.available is True
    assert result.changes.projects.total == 1
    assert result.changes.projects.by_direction == {"Web": 1}


def test_same_day_comparison_yields_zero_deltas(conn):
    data = aggregate([project("A", total_cost="10")], today=TODAY)
    create_or_update_snapshot(conn, "2026-10-19", data)

    result = compare_with_snapshot(conn, data, 0, today=TODAY)

    assert result.changes.projects.total == 0
    assert result.changes.finances.total == 0


@pytest.mark.parametrize("comparison, expected", [("previousDay", 1), ("weekAgo", 7), ("30", 30), ("0", 0)])
def test_resolve_offset(comparison, expected):
    assert resolve_offset(comparison) == expected


@pytest.mark.parametrize("comparison", ["monthAgo", "-1", "1.5", ""])
def test_resolve_offset_rejects_unknown(comparison):
    with pytest.raises(InvalidInputError):
        resolve_offset(comparison)


def test_negative_offset_is_rejected(conn):
    with pytest.raises(InvalidInputError):
        compare_with_snapshot(conn, aggregate([], today=TODAY), -1, today=TODAY)


def test_load_entities_skips_unreadable_records():
    entities = load_entities([
        {"name": "A", "direction": "Web", "legacy_field": "ignored"},
        {"direction": "Web"},
    ])

    assert [e.name for e in entities] == ["A"]
