"""
Application configuration.

Settings are read from environment variables when the application is
created. The list of project sheets is fixed: every known sheet of the
tracking spreadsheet is mapped to the direction (department) its projects
belong to and to the row that carries its column headers.
"""

import os
from dataclasses import dataclass, field
from typing import List, Tuple

from .db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class SheetMapping:
    sheet_name: str
    direction: str
    header_row_index: int = 0


SHEET_MAPPINGS: Tuple[SheetMapping, ...] = (
    # The WEB sheet has a title row above its headers.
    SheetMapping("Проекты WEB", "Web", 1),
    SheetMapping("Проекты mobile", "Mobile", 0),
    SheetMapping("Design (графичесикй)", "Design", 0),
    SheetMapping("Проекты разработка ПО", "Разработка ПО", 0),
    SheetMapping("Проекты пром дизайн", "Промышленный дизайн", 0),
)

ROSTER_SHEET = SheetMapping("Команда", "", 0)

DEFAULT_SPREADSHEET_ID = "1wqIvBBVGWFAlqYD42yYLm859h6uCWGBnCkUq5rv0ZeQ"
DEFAULT_CACHE_TTL = 60.0
DEFAULT_SHEET_CONCURRENCY = 3


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    source_backend: str = "google"
    workbook_dir: str = "./data/workbooks"
    credentials_path: str | None = None
    cache_ttl: float = DEFAULT_CACHE_TTL
    sheet_concurrency: int = DEFAULT_SHEET_CONCURRENCY
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    sheet_mappings: Tuple[SheetMapping, ...] = SHEET_MAPPINGS
    roster_sheet: SheetMapping | None = ROSTER_SHEET


def _parse_origins(raw: str) -> List[str]:
    if raw.strip() == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings() -> Settings:
    """Build settings from the environment, falling back to defaults."""
    return Settings(
        db_path=os.getenv("NIR_DASHBOARD_DB_PATH", DEFAULT_DB_PATH),
        spreadsheet_id=os.getenv("NIR_DASHBOARD_SPREADSHEET_ID", DEFAULT_SPREADSHEET_ID),
        source_backend=os.getenv("NIR_DASHBOARD_SOURCE", "google").strip().lower(),
        workbook_dir=os.getenv("NIR_DASHBOARD_WORKBOOK_DIR", "./data/workbooks"),
        credentials_path=os.getenv("GSHEETS_CREDENTIALS") or os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
        cache_ttl=float(os.getenv("NIR_DASHBOARD_CACHE_TTL", DEFAULT_CACHE_TTL)),
        sheet_concurrency=max(1, int(os.getenv("NIR_DASHBOARD_SHEET_CONCURRENCY", DEFAULT_SHEET_CONCURRENCY))),
        cors_origins=_parse_origins(os.getenv("NIR_DASHBOARD_CORS_ORIGINS", "*")),
    )
