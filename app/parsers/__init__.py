"""
Rate CSV parsing and rendering.
"""

from app.parsers.rate_csv import RATE_CSV_HEADER, parse_rate_csv, render_rate_csv

__all__ = [
    "RATE_CSV_HEADER",
    "parse_rate_csv",
    "render_rate_csv",
]
