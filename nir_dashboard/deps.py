"""Request-scoped dependencies shared by the routers."""

import sqlite3
from typing import Iterator, Optional

from fastapi import Request

from .config import Settings
from .db import get_connection
from .services.dashboard import DashboardService
from .services.sheets import TabularSource


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_conn(request: Request) -> Iterator[sqlite3.Connection]:
    conn = get_connection(request.app.state.settings.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_dashboard_service(request: Request) -> DashboardService:
    return request.app.state.dashboard


def get_source(request: Request) -> TabularSource:
    return request.app.state.source


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None
