from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

from .constants import ERROR_LOG_PATH, SETTINGS_JSON_PATH, SMS_DAILY_LIMIT
from .logger import configure_logging
from .notifier import clean_mobile, expiry_reminder_message
from .service import LedgerService
from .settings_store import SettingsStore
from .views import expiring_tomorrow

log = logging.getLogger(__name__)


def run_expiry_reminders(service: LedgerService, today: date, daily_limit: int = SMS_DAILY_LIMIT) -> dict[str, Any]:
    """Text every student whose subscription ends tomorrow."""

    loaded = service.get_students()
    if not loaded["success"]:
        return {"success": False, "message": loaded["message"], "timestamp": datetime.now().isoformat()}

    students = loaded["students"]
    expiring = expiring_tomorrow(students, today)
    log.info("Found %d students with subscriptions ending tomorrow", len(expiring))
    if len(expiring) > daily_limit:
        log.warning("%d reminders exceed the daily SMS limit of %d", len(expiring), daily_limit)

    results: list[dict[str, Any]] = []
    for student in expiring:
        if not student.mobile:
            results.append({"student": student.username, "mobile": "N/A", "sent": False, "error": "No mobile number"})
            continue
        sent = service.send_reminder(student, expiry_reminder_message(student))
        entry = {"student": student.username, "mobile": clean_mobile(student.mobile), "sent": bool(sent["success"])}
        if not sent["success"]:
            entry["error"] = sent.get("error") or sent.get("message")
        results.append(entry)

    return {
        "success": True,
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "students_checked": len(students),
        "expiring_tomorrow": len(expiring),
        "sms_sent": sum(1 for r in results if r["sent"]),
        "daily_limit": daily_limit,
        "within_limit": len(expiring) <= daily_limit,
        "results": results,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Send SMS reminders for subscriptions ending tomorrow.")
    parser.add_argument("--settings", type=Path, default=SETTINGS_JSON_PATH, help="path to settings.json")
    parser.add_argument("--today", type=date.fromisoformat, default=None, help="override today's date (YYYY-MM-DD)")
    parser.add_argument("--verbose", action="store_true", help="log to stderr instead of the error log")
    args = parser.parse_args(argv)

    configure_logging(None if args.verbose else ERROR_LOG_PATH)
    settings = SettingsStore(args.settings).load()
    service = LedgerService.from_settings(settings)
    try:
        summary = run_expiry_reminders(service, args.today or date.today(), settings.sms_daily_limit)
    finally:
        service.close()
    json.dump(summary, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0 if summary["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
