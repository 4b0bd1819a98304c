"""
app/services/scrape_job_tracker.py

Bounded polling of external scrape tasks.

Rounds are strictly sequential; within a round every non-terminal task is
polled in parallel and the responses are merged on the calling thread once
the round is complete. Polling ends when every task is terminal, when the
cancel event is set, or after ``max_rounds`` rounds.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import lru_cache
from typing import Any

from app.config import get_external_http_settings, get_scrape_worker_settings
from app.connectors.scrape_worker import ScrapeWorkerClient
from app.domain.scrape_jobs import ScrapeTask, ScrapeTriggerResult, TrackerOutcome, TrackerResult
from app.errors import WorkerError
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

STILL_RUNNING_MESSAGE = "Task is likely still running"

StatusFetcher = Callable[[str], Mapping[str, Any]]
RoundCallback = Callable[[int, list[ScrapeTask]], None]


def parse_trigger_response(raw: Mapping[str, Any]) -> ScrapeTriggerResult:
    """
    Build pending tasks from the worker's trigger acknowledgement.

    Accepts ``tasks`` items keyed ``task_id`` or ``taskId``; items without an
    id are skipped.
    """

    body: Mapping[str, Any] = raw
    nested = raw.get("data")
    if "tasks" not in raw and isinstance(nested, Mapping):
        body = nested

    tasks: list[ScrapeTask] = []
    raw_tasks = body.get("tasks")
    if isinstance(raw_tasks, list):
        for item in raw_tasks:
            if not isinstance(item, Mapping):
                continue
            task_id = item.get("task_id") or item.get("taskId")
            if not task_id:
                continue
            tasks.append(
                ScrapeTask(
                    task_id=str(task_id),
                    type=str(item.get("type") or "property"),
                    name=str(item.get("name") or task_id),
                )
            )
    elif body.get("task_id"):
        tasks.append(ScrapeTask(task_id=str(body["task_id"]), type="property", name=str(body["task_id"])))

    total = body.get("total_tasks", body.get("totalTasks"))
    try:
        total_tasks = int(total) if total is not None else len(tasks)
    except (TypeError, ValueError):
        total_tasks = len(tasks)
    return ScrapeTriggerResult(total_tasks=total_tasks, tasks=tasks, raw=dict(raw))


class ScrapeJobTracker:
    def __init__(
        self,
        *,
        status_fetcher: StatusFetcher,
        poll_interval_seconds: float = 3.0,
        max_rounds: int = 200,
        max_workers: int = 8,
        single_task_max_attempts: int = 30,
        single_task_interval_seconds: float = 1.0,
    ) -> None:
        self._status_fetcher = status_fetcher
        self._poll_interval_seconds = max(0.0, poll_interval_seconds)
        self._max_rounds = max(1, max_rounds)
        self._max_workers = max(1, max_workers)
        self._single_task_max_attempts = max(1, single_task_max_attempts)
        self._single_task_interval_seconds = max(0.0, single_task_interval_seconds)

    def track(
        self,
        tasks: Sequence[ScrapeTask],
        *,
        cancel_event: threading.Event | None = None,
        on_round: RoundCallback | None = None,
    ) -> TrackerResult:
        """
        Poll until every task is terminal, the event is set, or rounds run out.

        A failed status query leaves that task unchanged for the round.
        """

        cancel = cancel_event or threading.Event()
        tracked = list(tasks)
        rounds = 0

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="scrape-poll") as executor:
            while True:
                active = [task for task in tracked if not task.is_terminal]
                if not active:
                    outcome = TrackerOutcome.COMPLETED
                    break
                if rounds >= self._max_rounds:
                    outcome = TrackerOutcome.TIMED_OUT
                    break
                if cancel.wait(self._poll_interval_seconds):
                    outcome = TrackerOutcome.STOPPED
                    break

                rounds += 1
                self._poll_round(executor, active)
                log_event(
                    logger,
                    logging.DEBUG,
                    "scrape_poll_round",
                    round=rounds,
                    active=len(active),
                    pending=sum(1 for task in tracked if not task.is_terminal),
                )
                if on_round is not None:
                    on_round(rounds, tracked)

        result = TrackerResult(outcome=outcome, rounds=rounds, tasks=tracked)
        log_event(
            logger,
            logging.INFO if outcome == TrackerOutcome.COMPLETED else logging.WARNING,
            "scrape_tracking_finished",
            outcome=outcome,
            rounds=rounds,
            completed=len(result.completed_tasks),
            failed=len(result.failed_tasks),
            pending=[task.task_id for task in result.pending_tasks],
        )
        return result

    def wait_for_task(
        self,
        task_id: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> TrackerResult:
        """
        Wait for one task with a fixed attempt ceiling.

        On exhaustion the task is reported as timed out with a
        "likely still running" message rather than failed.
        """

        cancel = cancel_event or threading.Event()
        task = ScrapeTask(task_id=task_id, type="property", name=task_id)
        attempts = 0
        while attempts < self._single_task_max_attempts:
            attempts += 1
            try:
                payload = self._status_fetcher(task_id)
            except WorkerError as exc:
                logger.warning("Status check failed task_id=%s attempt=%s: %s", task_id, attempts, exc)
            else:
                task.apply_status(payload)
                if task.is_terminal:
                    return TrackerResult(outcome=TrackerOutcome.COMPLETED, rounds=attempts, tasks=[task])

            if attempts < self._single_task_max_attempts and cancel.wait(self._single_task_interval_seconds):
                return TrackerResult(outcome=TrackerOutcome.STOPPED, rounds=attempts, tasks=[task])

        task.message = STILL_RUNNING_MESSAGE
        return TrackerResult(outcome=TrackerOutcome.TIMED_OUT, rounds=attempts, tasks=[task])

    def _poll_round(self, executor: ThreadPoolExecutor, active: list[ScrapeTask]) -> None:
        futures = {executor.submit(self._status_fetcher, task.task_id): task for task in active}
        for future in as_completed(futures):
            task = futures[future]
            try:
                payload = future.result()
            except WorkerError as exc:
                logger.warning("Status poll failed task_id=%s: %s", task.task_id, exc)
                continue
            if not isinstance(payload, Mapping):
                logger.warning("Status poll returned non-object task_id=%s", task.task_id)
                continue
            previous = task.status
            if task.apply_status(payload) and task.status != previous:
                logger.info("Task %s %s -> %s", task.task_id, previous, task.status)


@lru_cache(maxsize=1)
def get_scrape_worker_client() -> ScrapeWorkerClient:
    return ScrapeWorkerClient(
        worker_settings=get_scrape_worker_settings(),
        http_settings=get_external_http_settings(),
    )


def build_scrape_job_tracker(client: ScrapeWorkerClient | None = None) -> ScrapeJobTracker:
    """
    Build a tracker bound to the configured worker.
    """

    settings = get_scrape_worker_settings()
    worker = client or get_scrape_worker_client()
    return ScrapeJobTracker(
        status_fetcher=worker.get_task_status,
        poll_interval_seconds=settings.poll_interval_seconds,
        max_rounds=settings.max_poll_rounds,
        max_workers=settings.poll_concurrency,
        single_task_max_attempts=settings.single_task_max_attempts,
        single_task_interval_seconds=settings.single_task_interval_seconds,
    )
