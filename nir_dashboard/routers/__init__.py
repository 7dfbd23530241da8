"""Initialize router subpackage."""

from .dashboard import router as dashboard_router  # noqa: F401
from .snapshots import router as snapshots_router  # noqa: F401
from .sheets import router as sheets_router  # noqa: F401
from .logs import router as logs_router  # noqa: F401
