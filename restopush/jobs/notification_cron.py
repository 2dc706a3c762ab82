"""Run the notification pipeline once from a system scheduler.

    python -m restopush.jobs.notification_cron                 # dispatch due rows
    python -m restopush.jobs.notification_cron --schedule weekly_offers
    python -m restopush.jobs.notification_cron --schedule event_reminders

Prints a JSON summary and exits non-zero when any row failed.
"""
import argparse
import json
import logging
import sys
import time

from restopush.config import settings
from restopush.database import SessionLocal, utc_now
from restopush.services.processor import DueNotificationProcessor
from restopush.services.push_gateway import ExpoPushClient
from restopush.services.scheduling import EventReminderScheduler, WeeklyOfferScheduler

logger = logging.getLogger("restopush.jobs.notification_cron")

PRODUCERS = {
    "weekly_offers": WeeklyOfferScheduler,
    "event_reminders": EventReminderScheduler,
}


def run_producer(name: str) -> dict:
    db = SessionLocal()
    try:
        count = PRODUCERS[name](db).schedule()
    finally:
        db.close()
    return {"success": True, "type": name, "scheduled_count": count}


def run_processor() -> dict:
    start = time.monotonic()
    db = SessionLocal()
    gateway = ExpoPushClient()
    try:
        result = DueNotificationProcessor(db, gateway).run()
    finally:
        gateway.close()
        db.close()
    return {
        "success": result.failed == 0,
        "message": f"Processed {result.processed} scheduled notifications",
        "execution_time_ms": int((time.monotonic() - start) * 1000),
        "timestamp": utc_now().isoformat(),
        **result.to_dict(),
    }


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Scheduled notification pipeline")
    parser.add_argument(
        "--schedule",
        choices=sorted(PRODUCERS),
        default=None,
        help="Run a producer instead of dispatching due notifications",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    summary = run_producer(args.schedule) if args.schedule else run_processor()
    print(json.dumps(summary, indent=2))
    return 0 if summary["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
