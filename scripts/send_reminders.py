"""
Send the day-before reminder for every active booking scheduled tomorrow.

Meant to run once a day from a scheduler (cron, platform job):
  python scripts/send_reminders.py [--date YYYY-MM-DD]
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.visite import create_app
from app.visite.db import session_scope
from app.visite.modules.bookings.service import bookings_due_on
from app.visite.modules.notifications.service import notify_booking_reminder
from app.visite.utils import local_now, parse_date

logger = logging.getLogger("send_reminders")


def send_reminders(app, day=None) -> dict[str, int]:
    counts = {"bookings": 0, "email": 0, "sms": 0, "failed": 0}
    with app.app_context(), session_scope(app) as s:
        day = day or (local_now().date() + timedelta(days=1))
        for booking in bookings_due_on(s, day):
            results = notify_booking_reminder(s, booking)
            counts["bookings"] += 1
            for channel in ("email", "sms"):
                if results.get(channel) is True:
                    counts[channel] += 1
                elif results.get(channel) is False:
                    counts["failed"] += 1
    logger.info("Reminders for %s: %s", day.isoformat(), counts)
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--date", help="appointment day to remind (default: tomorrow)")
    args = parser.parse_args()

    day = None
    if args.date:
        day = parse_date(args.date)
        if day is None:
            print(f"ERROR: --date must be YYYY-MM-DD, got {args.date!r}", flush=True)
            sys.exit(2)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    counts = send_reminders(create_app(), day)
    print(f"Reminders sent: {counts}", flush=True)


if __name__ == "__main__":
    main()
