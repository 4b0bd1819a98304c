"""
Model package exports.

Import every model here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.competitor import Competitor
from db.models.csv_upload import CSVUpload
from db.models.property import Property
from db.models.scraped_rate import ScrapedRate

__all__ = [
    "Property",
    "Competitor",
    "ScrapedRate",
    "CSVUpload",
]
