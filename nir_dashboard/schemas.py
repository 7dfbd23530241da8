"""
Pydantic schema definitions for project entities, aggregates and history.

These schemas define the shape of data produced by the normalizer and the
aggregator and returned by API endpoints. Stored snapshots are decoded
with loose dictionary types (schema-on-read) so that records written by
older versions of the entity model stay readable.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TeamMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    role: str = ""
    employment: str = ""


class Financials(BaseModel):
    model_config = ConfigDict(frozen=True)

    cost: str = ""
    kp: str = ""


class ProjectEntity(BaseModel):
    """A project reconstructed from one or more spreadsheet rows.

    Identity is the pair (name, direction): the same project name may be
    used by several departments. Team members are unique by normalized
    name and keep the order in which they were first seen.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    direction: str
    status: str = ""
    phase: str = ""
    start_date: str = ""
    end_date: str = ""
    type: str = ""
    customer: str = ""
    customer_contacts: str = ""
    executor: str = ""
    total_cost: str = ""
    payment_status: str = ""
    goal: str = ""
    expected_result: str = ""
    stack: str = ""
    project_link: str = ""
    result_link: str = ""
    comment: str = ""
    financials: Financials = Field(default_factory=Financials)
    team: List[TeamMember] = Field(default_factory=list)

    @property
    def project_key(self) -> str:
        return make_project_key(self.name, self.direction)


def make_project_key(name: str, direction: str) -> str:
    return f"{name}|{direction}"


class FinancialBreakdown(BaseModel):
    total: float = 0.0
    in_work: float = 0.0
    receivable: float = 0.0
    paid: float = 0.0


class DeadlineCounts(BaseModel):
    on_track: int = 0
    overdue_small: int = 0
    overdue_large: int = 0
    completed: int = 0


class TypeCounts(BaseModel):
    internal: int = 0
    commercial: int = 0
    free: int = 0


class CompanyCounts(BaseModel):
    ite29: int = 0
    nir: int = 0


class Summary(BaseModel):
    total_projects: int
    total_team_members: int
    total_budget: float
    financial_breakdown: FinancialBreakdown


class Charts(BaseModel):
    by_direction: Dict[str, int]
    deadlines: DeadlineCounts
    by_status: Dict[str, int]
    by_phase: Dict[str, int]
    team_roles: Dict[str, int]
    by_type: TypeCounts
    by_company: CompanyCounts


class DashboardData(BaseModel):
    """Aggregate bundle: summary, chart groupings and the project list."""

    summary: Summary
    charts: Charts
    projects: List[ProjectEntity]


class SheetInfo(BaseModel):
    name: str
    row_count: int
    column_count: int


class SnapshotInfo(BaseModel):
    date_key: str
    display_date: str
    created_at: str
    is_current: bool


class Snapshot(BaseModel):
    date_key: str
    display_date: str
    created_at: str
    summary: Dict[str, Any]
    charts: Dict[str, Any]
    projects: List[Dict[str, Any]]


class SnapshotCreated(BaseModel):
    success: bool
    date_key: str
    display_date: str


class SnapshotDeleted(BaseModel):
    success: bool
    date_key: str


class HistoryEntry(BaseModel):
    week_start: str
    display_date: str
    status: str
    status_changed_at: Optional[str]
    previous_status: Optional[str]
    snapshot: Dict[str, Any]


class ProjectChanges(BaseModel):
    total: int
    by_direction: Dict[str, int]
    by_type: TypeCounts
    by_company: CompanyCounts


class ComparisonChanges(BaseModel):
    projects: ProjectChanges
    finances: FinancialBreakdown
    deadlines: DeadlineCounts


class ComparisonResult(BaseModel):
    """Deltas (current minus historical) against the snapshot N days back.

    `available` is False when no snapshot exists for the comparison date;
    that is a normal outcome, not an error.
    """

    available: bool
    offset_days: int
    comparison_date: str
    message: Optional[str] = None
    changes: Optional[ComparisonChanges] = None


class ActivityEntry(BaseModel):
    id: int
    actor: str
    action: str
    details: Optional[str]
    ip_address: Optional[str]
    created_at: str


class ActivityCount(BaseModel):
    action: str
    count: int


class ColumnStats(BaseModel):
    name: str
    unique_values: int
    empty_count: int


class SheetStats(BaseModel):
    total: int
    columns: List[ColumnStats]
