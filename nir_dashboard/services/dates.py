"""Calendar date keys.

Snapshots and history rows are keyed by the local calendar date as
"YYYY-MM-DD"; the same day is shown to users as "dd.mm.yyyy".
"""

import re
from datetime import date

from ..exceptions import InvalidInputError

DATE_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def date_key_for(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def parse_date_key(date_key: str) -> date:
    """Validate a YYYY-MM-DD key and return its date."""
    match = DATE_KEY_PATTERN.match(date_key or "")
    if not match:
        raise InvalidInputError(f"Invalid date key {date_key!r}. Must be YYYY-MM-DD")
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError as e:
        raise InvalidInputError(f"Invalid date key {date_key!r}: {e}") from e


def format_display_date(date_key: str) -> str:
    return parse_date_key(date_key).strftime("%d.%m.%Y")
