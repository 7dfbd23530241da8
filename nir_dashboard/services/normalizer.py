"""
Spreadsheet-to-entity normalization.

Project sheets are maintained by hand with one row per team member: the
project columns are filled only on the first member's row and the rows
below inherit them (fill-down). This module rebuilds one `ProjectEntity`
per (name, direction) from such rows across all known sheets.

Pipeline:
1. fetch every mapped sheet, a bounded number of sheets at a time;
2. fold each sheet's rows into (project context, row) pairs;
3. group the pairs by project key, collecting team members;
4. resolve member roles from the roster sheet when it lists the person.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..config import SheetMapping
from ..exceptions import SourceUnavailableError
from ..schemas import Financials, ProjectEntity, TeamMember, make_project_key
from .sheets import RawRow, TabularSource, rows_to_records

logger = logging.getLogger(__name__)

# The status column header carries the reporting date ("этап проекта на 01.10"),
# so it is matched by prefix.
STATUS_PREFIX = "_этап_проекта_на_"

NAME_KEYS = ("наименование_проекта", "название_проекта", "проект")
STATUS_KEYS = ("статус_проекта", "этап_проекта", "статус")
PHASE_KEYS = ("фаза_проекта", "фаза", "стадия_проекта")
TYPE_KEYS = ("тип_проекта", "тип")
START_KEYS = ("начало_проекта", "дата_начала")
END_KEYS = ("завершение_проекта", "дата_завершения", "срок_завершения")
CUSTOMER_KEYS = ("_заказчик", "заказчик")
CONTACTS_KEYS = ("_контакты_заказчика", "контакты_заказчика")
EXECUTOR_KEYS = ("_компания_исполнитель", "компания_исполнитель", "исполнитель")
TOTAL_COST_KEYS = ("итоговая_стоимость", "стоимость")
COST_KEYS = ("расчет_стоимости_услуг", "расчёт_стоимости_услуг")
KP_KEYS = ("_кп", "кп")
PAYMENT_KEYS = ("статус_оплаты", "_статус_оплаты", "оплата")
GOAL_KEYS = ("_цель_проекта", "цель_проекта")
RESULT_KEYS = ("ожидаемый_результат", "_ожидаемый_результат")
STACK_KEYS = ("стек", "стек_технологий")
PROJECT_LINK_KEYS = ("ссылка_на_проект",)
RESULT_LINK_KEYS = ("ссылка_на_результат",)
COMMENT_KEYS = ("комментарий", "комментарии")

MEMBER_NAME_KEYS = ("команда_фио", "фио", "команда")
MEMBER_ROLE_KEYS = ("роль_в_проекте", "роль")
MEMBER_EMPLOYMENT_KEYS = ("занятость", "трудоустройство", "тип_занятости")

ROSTER_NAME_KEYS = ("фио", "команда_фио", "сотрудник")
ROSTER_ROLE_KEYS = ("роль", "роль_в_проекте", "должность")

_MEMBER_SEPARATORS = re.compile(r"[,;\n]+")


def find_key(row: RawRow, predicate: Callable[[str], bool]) -> Optional[str]:
    """Return the first key of `row` satisfying `predicate`, or None."""
    for key in row:
        if predicate(key):
            return key
    return None


def pick(row: RawRow, keys: Sequence[str]) -> str:
    """Return the first non-empty value among the header variants `keys`."""
    for key in keys:
        value = (row.get(key) or "").strip()
        if value:
            return value
    return ""


def status_of(row: RawRow) -> str:
    key = find_key(row, lambda k: k.startswith(STATUS_PREFIX))
    if key is not None and row[key].strip():
        return row[key].strip()
    return pick(row, STATUS_KEYS)


def normalize_person_name(name: str) -> str:
    """Canonical form of a person's name: surname and given name only.

    "ё" is folded to "е" (keeping case), punctuation around tokens is
    dropped and only the first two whitespace-separated tokens are kept.
    """
    folded = (name or "").replace("ё", "е").replace("Ё", "Е")
    tokens = [t.strip(".,;") for t in folded.split()]
    return " ".join([t for t in tokens if t][:2])


def split_member_names(cell: str) -> List[str]:
    """Split a team cell that may list several people."""
    return [part.strip() for part in _MEMBER_SEPARATORS.split(cell or "") if part.strip()]


@dataclass(frozen=True)
class ProjectContext:
    """Project-level fields captured from the row that names the project."""

    name: str
    direction: str
    status: str = ""
    phase: str = ""
    type: str = ""
    start_date: str = ""
    end_date: str = ""
    customer: str = ""
    customer_contacts: str = ""
    executor: str = ""
    total_cost: str = ""
    cost: str = ""
    kp: str = ""
    payment_status: str = ""
    goal: str = ""
    expected_result: str = ""
    stack: str = ""
    project_link: str = ""
    result_link: str = ""
    comment: str = ""

    @property
    def key(self) -> str:
        return make_project_key(self.name, self.direction)


def project_context(row: RawRow, direction: str) -> Optional[ProjectContext]:
    """Build a context from a row, or None when the row names no project."""
    name = pick(row, NAME_KEYS)
    if not name:
        return None
    return ProjectContext(
        name=name,
        direction=direction,
        status=status_of(row),
        phase=pick(row, PHASE_KEYS),
        type=pick(row, TYPE_KEYS),
        start_date=pick(row, START_KEYS),
        end_date=pick(row, END_KEYS),
        customer=pick(row, CUSTOMER_KEYS),
        customer_contacts=pick(row, CONTACTS_KEYS),
        executor=pick(row, EXECUTOR_KEYS),
        total_cost=pick(row, TOTAL_COST_KEYS),
        cost=pick(row, COST_KEYS),
        kp=pick(row, KP_KEYS),
        payment_status=pick(row, PAYMENT_KEYS),
        goal=pick(row, GOAL_KEYS),
        expected_result=pick(row, RESULT_KEYS),
        stack=pick(row, STACK_KEYS),
        project_link=pick(row, PROJECT_LINK_KEYS),
        result_link=pick(row, RESULT_LINK_KEYS),
        comment=pick(row, COMMENT_KEYS),
    )


def fill_down(rows: Iterable[RawRow], direction: str) -> Iterator[Tuple[ProjectContext, RawRow]]:
    """Fold rows into (context, row) pairs.

    A row naming a project opens a new context; rows without a name
    inherit the most recent one. Rows before the first named row are
    dropped. The row itself is passed through untouched so its own
    team-member cells are never inherited.
    """
    current: Optional[ProjectContext] = None
    for row in rows:
        current = project_context(row, direction) or current
        if current is not None:
            yield current, row


@dataclass
class _ProjectGroup:
    context: ProjectContext
    team: Dict[str, TeamMember]


def group_projects(
    pairs: Iterable[Tuple[ProjectContext, RawRow]],
    roster: Optional[Dict[str, str]] = None,
) -> List[ProjectEntity]:
    """Merge (context, row) pairs into one entity per project key.

    The first context seen for a key provides the project fields. Every
    row contributes the people named in its team cell; a person already in
    the team (by normalized name) keeps the role and employment recorded
    first. A roster role wins over the role typed in the row.
    """
    roster = roster or {}
    groups: Dict[str, _ProjectGroup] = {}
    for context, row in pairs:
        group = groups.get(context.key)
        if group is None:
            group = groups[context.key] = _ProjectGroup(context=context, team={})
        inline_role = pick(row, MEMBER_ROLE_KEYS)
        employment = pick(row, MEMBER_EMPLOYMENT_KEYS) or context.executor
        for raw_name in split_member_names(pick(row, MEMBER_NAME_KEYS)):
            name = normalize_person_name(raw_name)
            if not name or name in group.team:
                continue
            group.team[name] = TeamMember(
                name=name,
                role=roster.get(name) or inline_role,
                employment=employment,
            )
    return [_to_entity(group) for group in groups.values()]


def _to_entity(group: _ProjectGroup) -> ProjectEntity:
    ctx = group.context
    return ProjectEntity(
        name=ctx.name,
        direction=ctx.direction,
        status=ctx.status,
        phase=ctx.phase,
        start_date=ctx.start_date,
        end_date=ctx.end_date,
        type=ctx.type,
        customer=ctx.customer,
        customer_contacts=ctx.customer_contacts,
        executor=ctx.executor,
        total_cost=ctx.total_cost,
        payment_status=ctx.payment_status,
        goal=ctx.goal,
        expected_result=ctx.expected_result,
        stack=ctx.stack,
        project_link=ctx.project_link,
        result_link=ctx.result_link,
        comment=ctx.comment,
        financials=Financials(cost=ctx.cost, kp=ctx.kp),
        team=list(group.team.values()),
    )


def roster_from_records(records: Iterable[RawRow]) -> Dict[str, str]:
    roster: Dict[str, str] = {}
    for record in records:
        name = normalize_person_name(pick(record, ROSTER_NAME_KEYS))
        role = pick(record, ROSTER_ROLE_KEYS)
        if name and role and name not in roster:
            roster[name] = role
    return roster


class EntityNormalizer:
    """Build project entities for one spreadsheet from its mapped sheets."""

    def __init__(
        self,
        source: TabularSource,
        mappings: Sequence[SheetMapping],
        roster_sheet: Optional[SheetMapping] = None,
        concurrency: int = 3,
    ):
        self.source = source
        self.mappings = list(mappings)
        self.roster_sheet = roster_sheet
        self.concurrency = max(1, concurrency)

    async def load_roster(self, source_id: str) -> Dict[str, str]:
        """Load name -> role from the roster sheet; an unreadable roster yields {}."""
        if self.roster_sheet is None:
            return {}
        try:
            rows = await self.source.get_rows(source_id, self.roster_sheet.sheet_name)
        except SourceUnavailableError as e:
            logger.warning("Roster sheet unavailable, using inline roles: %s", e.message)
            return {}
        return roster_from_records(rows_to_records(rows, self.roster_sheet.header_row_index))

    async def _fetch(self, source_id: str, mapping: SheetMapping) -> List[RawRow]:
        logger.debug("Fetching sheet '%s'", mapping.sheet_name)
        rows = await self.source.get_rows(source_id, mapping.sheet_name)
        return rows_to_records(rows, mapping.header_row_index)

    async def fetch_sheets(self, source_id: str) -> List[Tuple[SheetMapping, List[RawRow]]]:
        """Fetch the mapped sheets in batches of `concurrency`.

        Each batch runs concurrently and completes before the next one
        starts. Any failure aborts the whole pass.
        """
        fetched: List[Tuple[SheetMapping, List[RawRow]]] = []
        for start in range(0, len(self.mappings), self.concurrency):
            batch = self.mappings[start:start + self.concurrency]
            results = await asyncio.gather(*(self._fetch(source_id, m) for m in batch))
            fetched.extend(zip(batch, results))
        return fetched

    async def normalize(self, source_id: str) -> List[ProjectEntity]:
        roster = await self.load_roster(source_id)
        sheets = await self.fetch_sheets(source_id)
        pairs: List[Tuple[ProjectContext, RawRow]] = []
        for mapping, records in sheets:
            pairs.extend(fill_down(records, mapping.direction))
        entities = group_projects(pairs, roster)
        logger.info("Normalized %d projects from %d sheets", len(entities), len(sheets))
        return entities
