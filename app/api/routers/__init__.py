"""
app/api/routers package marker.
"""

from app.api.routers.rate_uploads import router as rate_uploads_router
from app.api.routers.scrape import router as scrape_router
from app.api.routers.webhooks import router as webhooks_router

__all__ = [
    "rate_uploads_router",
    "scrape_router",
    "webhooks_router",
]
