"""
app/connectors package marker.
"""

from app.connectors.scrape_worker import ScrapeWorkerClient, normalize_worker_url

__all__ = [
    "ScrapeWorkerClient",
    "normalize_worker_url",
]
