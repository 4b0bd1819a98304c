"""
app/domain/scrape_jobs.py

In-memory state of asynchronous scrape tasks run by the external worker.
Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


class TaskStatus:
    """Task lifecycle: pending → processing → completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = frozenset({PENDING, PROCESSING, COMPLETED, FAILED})
    TERMINAL = frozenset({COMPLETED, FAILED})
    RANK = {PENDING: 0, PROCESSING: 1, COMPLETED: 2, FAILED: 2}


class TrackerOutcome:
    COMPLETED = "completed"
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"


@dataclass
class ScrapeTask:
    """
    One unit of external scraping work, identified by the worker's task_id.
    """

    task_id: str
    type: str
    name: str
    status: str = TaskStatus.PENDING
    progress: float | None = None
    message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TaskStatus.TERMINAL

    def apply_status(self, payload: Mapping[str, Any]) -> bool:
        """
        Merge one status response into the task. Returns True when anything changed.

        Terminal tasks are frozen and a task never moves back to an earlier
        status. Unknown or backward status values are ignored while progress
        and message are still merged.
        """

        if self.is_terminal:
            return False

        changed = False
        raw_status = payload.get("status")
        if isinstance(raw_status, str):
            status = raw_status.strip().lower()
            if status in TaskStatus.ALL and TaskStatus.RANK[status] > TaskStatus.RANK[self.status]:
                self.status = status
                changed = True

        progress = _coerce_progress(payload.get("progress"))
        if progress is not None and progress != self.progress:
            self.progress = progress
            changed = True

        message = payload.get("message")
        if isinstance(message, str) and message and message != self.message:
            self.message = message
            changed = True

        if self.status == TaskStatus.COMPLETED and self.progress != 100.0:
            self.progress = 100.0
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "type": self.type,
            "name": self.name,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
        }


@dataclass(frozen=True)
class ScrapeTriggerResult:
    """
    Worker acknowledgement of a scrape request.
    """

    total_tasks: int
    tasks: list[ScrapeTask]
    raw: Any = None


@dataclass(frozen=True)
class TrackerResult:
    outcome: str
    rounds: int
    tasks: list[ScrapeTask] = field(default_factory=list)

    @property
    def pending_tasks(self) -> list[ScrapeTask]:
        return [task for task in self.tasks if not task.is_terminal]

    @property
    def completed_tasks(self) -> list[ScrapeTask]:
        return [task for task in self.tasks if task.status == TaskStatus.COMPLETED]

    @property
    def failed_tasks(self) -> list[ScrapeTask]:
        return [task for task in self.tasks if task.status == TaskStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "rounds": self.rounds,
            "tasks": [task.to_dict() for task in self.tasks],
        }


def _coerce_progress(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return None
    if progress != progress:
        return None
    return max(0.0, min(100.0, progress))
