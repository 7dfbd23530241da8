"""Dashboard statistics computed from normalized project entities.

Every function here is pure: it takes a list of `ProjectEntity` (and, for
deadline classification, the current date) and returns counts. The same
functions are used for the live dashboard and for recomputing historical
snapshots in the comparison engine, so both sides are always classified
by the same rules.

Important principles
- Malformed text (costs, dates, statuses) never raises; it falls back to
  zero, an unbucketed deadline, or an "Unknown" label.
- Label matching is case-insensitive and treats "ё" as "е".
"""

from __future__ import annotations

import re
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..schemas import (
    Charts,
    CompanyCounts,
    DashboardData,
    DeadlineCounts,
    FinancialBreakdown,
    ProjectEntity,
    Summary,
    TypeCounts,
)

NO_DEADLINE = "No Deadline"
INVALID_DATE = "Invalid Date"
COMPLETED = "Completed"
EXCLUDED = "Excluded"
ON_TRACK = "On Track"
OVERDUE_SMALL = "Overdue < 2 weeks"
OVERDUE_LARGE = "Overdue > 2 weeks"

COMPLETED_MARKERS = ("завершен", "на поддержке", "готов")
EXCLUDED_MARKERS = ("пилот", "пауза")
PAID_MARKERS = ("оплачено",)
RECEIVABLE_MARKERS = ("счет выставлен",)
INTERNAL_MARKERS = ("внутренний",)
COMMERCIAL_MARKERS = ("коммерческий",)
FREE_MARKERS = ("безоплатный", "бесплатный")
ITE29_MARKERS = ("итэ", "it-", "элемент", "ите-29")
NIR_MARKERS = ("нир",)

SMALL_OVERDUE_DAYS = 14

_DATE_FRAGMENT = re.compile(r"\d{2}\.\d{2}")
_NOT_NUMERIC = re.compile(r"[^0-9,.\-]")
_NUMBER_PREFIX = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


def fold(text: Optional[str]) -> str:
    return (text or "").lower().replace("ё", "е").strip()


def _contains_any(text: str, markers: Iterable[str]) -> bool:
    return any(m in text for m in markers)


def parse_cost(text: Optional[str]) -> float:
    """Parse a free-text cost cell.

    Links and anything containing a dd.mm fragment are not costs and
    count as zero. Otherwise the ruble marker and every character other
    than digits, separators and minus are dropped, the first decimal comma
    becomes a point and the leading number is read.
    """
    if not text:
        return 0.0
    if "http" in text or _DATE_FRAGMENT.search(text):
        return 0.0
    clean = _NOT_NUMERIC.sub("", text.replace("р.", "")).replace(",", ".", 1)
    match = _NUMBER_PREFIX.match(clean)
    return float(match.group()) if match else 0.0


def project_cost(project: ProjectEntity) -> float:
    return parse_cost(project.total_cost or project.financials.cost)


def compute_total_budget(projects: List[ProjectEntity]) -> float:
    return sum(project_cost(p) for p in projects)


def compute_financial_breakdown(projects: List[ProjectEntity]) -> FinancialBreakdown:
    """Split costs by payment status: paid, invoiced (receivable), else in work."""
    breakdown = FinancialBreakdown()
    for p in projects:
        cost = project_cost(p)
        payment = fold(p.payment_status)
        breakdown.total += cost
        if _contains_any(payment, PAID_MARKERS):
            breakdown.paid += cost
        elif _contains_any(payment, RECEIVABLE_MARKERS):
            breakdown.receivable += cost
        else:
            breakdown.in_work += cost
    return breakdown


def parse_end_date(text: str) -> Optional[date]:
    parts = text.strip().split(".")
    if len(parts) != 3:
        return None
    try:
        return date(int(parts[2]), int(parts[1]), int(parts[0]))
    except ValueError:
        return None


def deadline_status(end_date: Optional[str], status: Optional[str], today: date) -> str:
    """Classify a project against its end date.

    Missing and unparsable dates are terminal states that are not counted
    in any bucket. Completed and excluded statuses take priority over the
    date comparison, which uses whole calendar days.
    """
    text = (end_date or "").strip()
    if not text or text == "-":
        return NO_DEADLINE
    parsed = parse_end_date(text)
    if parsed is None:
        return INVALID_DATE
    folded = fold(status)
    if _contains_any(folded, COMPLETED_MARKERS):
        return COMPLETED
    if _contains_any(folded, EXCLUDED_MARKERS):
        return EXCLUDED
    overdue_days = (today - parsed).days
    if overdue_days <= 0:
        return ON_TRACK
    if overdue_days <= SMALL_OVERDUE_DAYS:
        return OVERDUE_SMALL
    return OVERDUE_LARGE


def compute_deadlines(projects: List[ProjectEntity], today: date) -> DeadlineCounts:
    counts = DeadlineCounts()
    for p in projects:
        label = deadline_status(p.end_date, p.status, today)
        if label == COMPLETED:
            counts.completed += 1
        elif label == ON_TRACK:
            counts.on_track += 1
        elif label == OVERDUE_SMALL:
            counts.overdue_small += 1
        elif label == OVERDUE_LARGE:
            counts.overdue_large += 1
    return counts


def compute_by_direction(projects: List[ProjectEntity]) -> Dict[str, int]:
    stats: Dict[str, int] = {}
    for p in projects:
        direction = p.direction or "Other"
        stats[direction] = stats.get(direction, 0) + 1
    return stats


def _count_labels(labels: Iterable[str]) -> Dict[str, int]:
    stats: Dict[str, int] = {}
    for label in labels:
        key = label.strip() or "Unknown"
        stats[key] = stats.get(key, 0) + 1
    return stats


def compute_by_status(projects: List[ProjectEntity]) -> Dict[str, int]:
    return _count_labels(p.status for p in projects)


def compute_by_phase(projects: List[ProjectEntity]) -> Dict[str, int]:
    return _count_labels(p.phase for p in projects)


def compute_team_roles(projects: List[ProjectEntity]) -> Dict[str, int]:
    """Count people per role; a (person, role) pair is counted once overall."""
    stats: Dict[str, int] = {}
    seen: Set[Tuple[str, str]] = set()
    for p in projects:
        for member in p.team:
            role = member.role.strip()
            if not member.name or not role or (member.name, role) in seen:
                continue
            seen.add((member.name, role))
            stats[role] = stats.get(role, 0) + 1
    return stats


def compute_total_team_members(projects: List[ProjectEntity]) -> int:
    return len({m.name for p in projects for m in p.team if m.name})


def compute_by_type(projects: List[ProjectEntity]) -> TypeCounts:
    """Internal, commercial or free; the first matching label wins."""
    counts = TypeCounts()
    for p in projects:
        project_type = fold(p.type)
        if _contains_any(project_type, INTERNAL_MARKERS):
            counts.internal += 1
        elif _contains_any(project_type, COMMERCIAL_MARKERS):
            counts.commercial += 1
        elif _contains_any(project_type, FREE_MARKERS):
            counts.free += 1
    return counts


def compute_by_company(projects: List[ProjectEntity]) -> CompanyCounts:
    """Count projects per executing company.

    Membership is inclusive: a joint project whose executor text names
    both companies is counted for each of them.
    """
    counts = CompanyCounts()
    for p in projects:
        executor = fold(p.executor)
        if _contains_any(executor, ITE29_MARKERS):
            counts.ite29 += 1
        if _contains_any(executor, NIR_MARKERS):
            counts.nir += 1
    return counts


def aggregate(projects: List[ProjectEntity], today: Optional[date] = None) -> DashboardData:
    """Build the full dashboard bundle for a list of projects."""
    today = today or date.today()
    breakdown = compute_financial_breakdown(projects)
    summary = Summary(
        total_projects=len(projects),
        total_team_members=compute_total_team_members(projects),
        total_budget=compute_total_budget(projects),
        financial_breakdown=breakdown,
    )
    charts = Charts(
        by_direction=compute_by_direction(projects),
        deadlines=compute_deadlines(projects, today),
        by_status=compute_by_status(projects),
        by_phase=compute_by_phase(projects),
        team_roles=compute_team_roles(projects),
        by_type=compute_by_type(projects),
        by_company=compute_by_company(projects),
    )
    return DashboardData(summary=summary, charts=charts, projects=list(projects))
