class DashboardError(Exception):
    """Base class for errors raised by the dashboard core."""
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class SourceUnavailableError(DashboardError):
    """Raised when the spreadsheet source cannot deliver a sheet (network, auth, quota, missing tab)."""


class PersistenceError(DashboardError):
    """Raised when a snapshot or history write fails."""
    def __init__(self, message, failed_keys=None):
        super().__init__(message)
        self.failed_keys = list(failed_keys or [])


class InvalidInputError(DashboardError):
    """Raised when a public operation receives input of the wrong shape."""
