"""
app/domain package marker.
"""

from app.domain.rates import EntityRef, EntityType, ParsedRate, RateRecordInput, RowValidationError
from app.domain.scrape_jobs import ScrapeTask, TrackerOutcome, TrackerResult

__all__ = [
    "EntityRef",
    "EntityType",
    "ParsedRate",
    "RateRecordInput",
    "RowValidationError",
    "ScrapeTask",
    "TrackerOutcome",
    "TrackerResult",
]
