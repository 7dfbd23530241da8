"""
Entry point for the FastAPI application using sqlite backend.

Initialises the database, builds the long-lived services (source adapter,
cache, normalizer, dashboard service) once per application and registers
routers. Snapshots are created on request; scheduling them is left to an
external trigger calling `POST /api/snapshots/create`.
"""

from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, load_settings
from .db import init_db
from .logging_setup import configure_logging
from .routers import dashboard_router, logs_router, sheets_router, snapshots_router
from .services.cache import MemoryCache
from .services.dashboard import DashboardService
from .services.normalizer import EntityNormalizer
from .services.sheets import GoogleSheetsSource, TabularSource, WorkbookSource


def build_source(settings: Settings) -> TabularSource:
    if settings.source_backend == "workbook":
        return WorkbookSource(settings.workbook_dir)
    if settings.source_backend == "google":
        return GoogleSheetsSource(settings.credentials_path)
    raise ValueError(f"Unknown source backend {settings.source_backend!r}")


def create_app(settings: Optional[Settings] = None,
               source: Optional[TabularSource] = None,
               cache: Optional[MemoryCache] = None) -> FastAPI:
    configure_logging()
    settings = settings or load_settings()
    # Initialize the SQLite database schema
    init_db(settings.db_path)
    app = FastAPI(title="NIR Center Dashboard", description="Project tracking dashboard with daily snapshots")

    source = source or build_source(settings)
    normalizer = EntityNormalizer(
        source,
        settings.sheet_mappings,
        roster_sheet=settings.roster_sheet,
        concurrency=settings.sheet_concurrency,
    )
    app.state.settings = settings
    app.state.source = source
    app.state.cache = cache or MemoryCache()
    app.state.dashboard = DashboardService(normalizer, app.state.cache, ttl=settings.cache_ttl)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "cache": app.state.cache.stats(),
        }

    # Include routers
    app.include_router(dashboard_router)
    app.include_router(snapshots_router)
    app.include_router(sheets_router)
    app.include_router(logs_router)
    return app


def run() -> None:
    import uvicorn

    uvicorn.run("nir_dashboard.main:create_app", factory=True, host="0.0.0.0", port=3001)
