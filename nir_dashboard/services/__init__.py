"""Convenience imports for services."""

from .aggregator import aggregate, parse_cost  # noqa: F401
from .cache import MemoryCache  # noqa: F401
from .comparison import compare_with_snapshot  # noqa: F401
from .dashboard import DashboardService  # noqa: F401
from .history import (
    get_project_history,
    get_status_duration,
    get_status_durations,
    record_history,
)  # noqa: F401
from .normalizer import EntityNormalizer, normalize_person_name  # noqa: F401
from .snapshots import (
    create_or_update_snapshot,
    create_snapshot,
    delete_snapshot,
    get_snapshot,
    list_snapshots,
)  # noqa: F401
