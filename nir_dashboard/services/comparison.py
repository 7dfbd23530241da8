"""
Period-over-period comparison.

Compares the live dashboard with the snapshot stored N calendar days ago.
Both project lists are run through the same aggregator functions, so the
deltas never mix classification rules from different releases with the
charts stored in an old snapshot. A missing snapshot is reported as
`available=False`, not as an error.
"""

import logging
import sqlite3
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..exceptions import InvalidInputError
from ..schemas import (
    CompanyCounts,
    ComparisonChanges,
    ComparisonResult,
    DashboardData,
    DeadlineCounts,
    FinancialBreakdown,
    ProjectChanges,
    ProjectEntity,
    TypeCounts,
)
from . import aggregator
from .dates import date_key_for
from .snapshots import get_snapshot

logger = logging.getLogger(__name__)

COMPARISON_OFFSETS = {"previousDay": 1, "weekAgo": 7}


def resolve_offset(comparison: str) -> int:
    """Map `previousDay`/`weekAgo` or a plain day count to an offset in days."""
    if comparison in COMPARISON_OFFSETS:
        return COMPARISON_OFFSETS[comparison]
    if comparison.isdigit():
        return int(comparison)
    raise InvalidInputError(
        f"Unknown comparison {comparison!r}. Use previousDay, weekAgo or a number of days"
    )


def load_entities(raw_projects: List[Dict[str, Any]]) -> List[ProjectEntity]:
    entities = []
    for raw in raw_projects:
        try:
            entities.append(ProjectEntity.model_validate(raw))
        except ValidationError as e:
            logger.warning("Skipping unreadable stored project: %s", e)
    return entities


def _delta_map(current: Dict[str, int], historical: Dict[str, int]) -> Dict[str, int]:
    return {
        key: current.get(key, 0) - historical.get(key, 0)
        for key in sorted(set(current) | set(historical))
    }


def _delta_model(current, historical, model):
    values = {
        name: getattr(current, name) - getattr(historical, name)
        for name in model.model_fields
    }
    return model(**values)


def compute_changes(
    current: List[ProjectEntity], historical: List[ProjectEntity], today: date
) -> ComparisonChanges:
    return ComparisonChanges(
        projects=ProjectChanges(
            total=len(current) - len(historical),
            by_direction=_delta_map(
                aggregator.compute_by_direction(current),
                aggregator.compute_by_direction(historical),
            ),
            by_type=_delta_model(
                aggregator.compute_by_type(current),
                aggregator.compute_by_type(historical),
                TypeCounts,
            ),
            by_company=_delta_model(
                aggregator.compute_by_company(current),
                aggregator.compute_by_company(historical),
                CompanyCounts,
            ),
        ),
        finances=_delta_model(
            aggregator.compute_financial_breakdown(current),
            aggregator.compute_financial_breakdown(historical),
            FinancialBreakdown,
        ),
        deadlines=_delta_model(
            aggregator.compute_deadlines(current, today),
            aggregator.compute_deadlines(historical, today),
            DeadlineCounts,
        ),
    )


def compare_with_snapshot(
    conn: sqlite3.Connection,
    current: DashboardData,
    offset_days: int,
    today: Optional[date] = None,
) -> ComparisonResult:
    if isinstance(offset_days, bool) or not isinstance(offset_days, int) or offset_days < 0:
        raise InvalidInputError("offset_days must be a non-negative integer")
    today = today or date.today()
    comparison_date = date_key_for(today - timedelta(days=offset_days))
    snapshot = get_snapshot(conn, comparison_date)
    if snapshot is None:
        return ComparisonResult(
            available=False,
            offset_days=offset_days,
            comparison_date=comparison_date,
            message=f"No snapshot available for {comparison_date}",
        )
    historical = load_entities(snapshot.projects)
    return ComparisonResult(
        available=True,
        offset_days=offset_days,
        comparison_date=comparison_date,
        changes=compute_changes(list(current.projects), historical, today),
    )
