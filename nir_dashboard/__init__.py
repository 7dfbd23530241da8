"""Project tracking dashboard: spreadsheet normalization, statistics and daily snapshots."""

__version__ = "0.1.0"
