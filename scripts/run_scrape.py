"""
Trigger a scrape for one property and follow its tasks from the CLI.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
import uuid
from datetime import date

from app.domain.scrape_jobs import ScrapeTask, TrackerOutcome
from app.services.scrape_job_tracker import build_scrape_job_tracker, parse_trigger_response
from app.services.scrape_trigger_service import ScrapeTriggerService
from db.session import SessionLocal


def _print_round(round_number: int, tasks: list[ScrapeTask]) -> None:
    done = sum(1 for task in tasks if task.is_terminal)
    print(f"round {round_number}: {done}/{len(tasks)} finished", file=sys.stderr)
    for task in tasks:
        progress = f"{task.progress:.0f}%" if task.progress is not None else "-"
        print(f"  {task.name} [{task.type}] {task.status} {progress}", file=sys.stderr)


def main() -> int:
    parser = argparse.ArgumentParser(description="Trigger and track a rate scrape.")
    parser.add_argument("--property-id", required=True, type=uuid.UUID)
    parser.add_argument("--user-id", required=True, type=uuid.UUID, help="Owner of the property.")
    parser.add_argument("--date-from", required=True, type=date.fromisoformat)
    parser.add_argument("--date-to", required=True, type=date.fromisoformat)
    parser.add_argument("--adults", type=int, default=2)
    parser.add_argument(
        "--no-track",
        action="store_true",
        help="Only trigger; do not poll task status.",
    )
    args = parser.parse_args()

    service = ScrapeTriggerService()
    with SessionLocal() as db:
        response = service.trigger(
            db=db,
            user_id=args.user_id,
            property_id=args.property_id,
            date_from=args.date_from,
            date_to=args.date_to,
            adults=args.adults,
        )

    trigger = parse_trigger_response(response["data"])
    if args.no_track or not trigger.tasks:
        print(json.dumps(response, indent=2, default=str))
        return 0

    cancel = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: cancel.set())

    tracker = build_scrape_job_tracker()
    result = tracker.track(trigger.tasks, cancel_event=cancel, on_round=_print_round)
    print(json.dumps(result.to_dict(), indent=2))

    if result.outcome == TrackerOutcome.COMPLETED and not result.failed_tasks:
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
