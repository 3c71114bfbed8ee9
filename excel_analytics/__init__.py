"""Excel Analytics API — spreadsheet upload, charting and AI insight service."""

__version__ = "1.0.0"
