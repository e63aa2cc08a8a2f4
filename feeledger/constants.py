from __future__ import annotations

from pathlib import Path

APP_NAME = "Library Fee Ledger"

WORKSPACE_ROOT = Path(__file__).resolve().parents[1]
DATA_XLSX_PATH = WORKSPACE_ROOT / "library_data.xlsx"
SETTINGS_JSON_PATH = WORKSPACE_ROOT / "settings.json"
SESSION_JSON_PATH = WORKSPACE_ROOT / "admin_session.json"
ERROR_LOG_PATH = WORKSPACE_ROOT / "error_log.txt"

STUDENTS_SHEET = "Student"

# Profile columns are owned by the student; every ledger row carries a copy.
PROFILE_COLUMNS = [
    "id",
    "username",
    "email",
    "mobile",
    "aadhar_number",
    "monthly_fee",
    "subscription_start",
    "subscription_end",
    "current_month_paid",
]
LEDGER_COLUMNS = ["month", "year", "amount", "status", "payment_date"]
ROW_HEADERS = PROFILE_COLUMNS + LEDGER_COLUMNS

MONTHS = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

DEFAULT_MONTHLY_FEE = 500.0
SESSION_MAX_AGE_DAYS = 90
SMS_DAILY_LIMIT = 50
FAST2SMS_URL = "https://www.fast2sms.com/dev/bulkV2"
