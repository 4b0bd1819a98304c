"""
app/schemas/scrape.py

Schemas for the scrape trigger and task status endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, model_validator


class ScrapeTriggerRequest(BaseModel):
    property_id: uuid.UUID
    date_from: date
    date_to: date
    adults: int = Field(default=2, ge=1, le=10)

    @model_validator(mode="after")
    def _check_window(self) -> "ScrapeTriggerRequest":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        return self


class ScrapeTriggerResponse(BaseModel):
    """
    Worker acknowledgement wrapped as ``{success, message, data}``.
    """

    success: bool
    message: str
    data: Any = None


class ScrapeTaskStatusResponse(BaseModel):
    task_id: str
    status: str | None = None
    progress: float | None = None
    message: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
