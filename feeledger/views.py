"""Read models derived from the raw rows returned by ``fetch_all``.

Everything here works on rows or lists that were already fetched; nothing
queries the store, so a dashboard can render any month without extra calls.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping

from .codec import RowCodec
from .constants import MONTHS
from .errors import StoreError
from .identity import IdentityScheme
from .models import LedgerRow, PaymentStatus, Student

log = logging.getLogger(__name__)

STATUS_FILTERS = ("all", "paid", "unpaid", "free")


@dataclass
class MonthStats:
    collected: float
    pending: float
    active_students: int
    free_students: int


@dataclass
class RevenuePoint:
    label: str
    month: int
    year: int
    collected: float
    pending: float


def list_students(rows: Iterable[Mapping[str, str]]) -> list[Student]:
    seen: set[str] = set()
    students: list[Student] = []
    for row in rows:
        sid = str(row.get("id", "") or "").strip()
        if not sid or sid in seen:
            continue
        try:
            student = RowCodec.decode_student(row)
        except StoreError as e:
            # A hand-edited cell spoils this row only; a later copy may still decode.
            log.warning("Skipping unreadable row for student %s: %s", sid, e)
            continue
        seen.add(sid)
        students.append(student)
    return students


def list_payments(rows: Iterable[Mapping[str, str]], scheme: IdentityScheme) -> list[LedgerRow]:
    payments: list[LedgerRow] = []
    for row in rows:
        if not RowCodec.is_ledger_row(row) or not str(row.get("id", "") or "").strip():
            continue
        try:
            payments.append(RowCodec.decode_ledger(row, key=scheme.key_of(row)))
        except StoreError as e:
            log.warning("Skipping unreadable ledger row for student %s: %s", row.get("id"), e)
    return payments


def index_payments(payments: Iterable[LedgerRow]) -> dict[tuple[str, int, int], LedgerRow]:
    index: dict[tuple[str, int, int], LedgerRow] = {}
    for p in payments:
        key = (p.student_id, p.month, p.year)
        if key in index:
            log.warning("Duplicate ledger rows for %s %d/%d; keeping the first", *key)
            continue
        index[key] = p
    return index


def status_for_month(
    student: Student,
    month: int,
    year: int,
    payments: Iterable[LedgerRow] | Mapping[tuple[str, int, int], LedgerRow],
) -> PaymentStatus:
    if student.is_free:
        return PaymentStatus.FREE
    if isinstance(payments, Mapping):
        record = payments.get((student.id, month, year))
    else:
        record = next(
            (p for p in payments if p.student_id == student.id and p.month == month and p.year == year),
            None,
        )
    if record is not None and record.status is PaymentStatus.PAID:
        return PaymentStatus.PAID
    return PaymentStatus.UNPAID


def filter_by_status(
    students: Iterable[Student],
    payments: Iterable[LedgerRow],
    month: int,
    year: int,
    status_filter: str = "all",
) -> list[Student]:
    if status_filter not in STATUS_FILTERS:
        raise ValueError(f"Unknown status filter: {status_filter!r}")
    students = list(students)
    if status_filter == "all":
        return students
    wanted = PaymentStatus(status_filter.capitalize())
    index = index_payments(payments)
    return [s for s in students if status_for_month(s, month, year, index) is wanted]


def _desk_number(student: Student) -> int:
    digits = re.sub(r"\D", "", student.id)
    return int(digits) if digits else 0


def sort_by_desk(students: Iterable[Student]) -> list[Student]:
    return sorted(students, key=_desk_number)


def month_stats(students: Iterable[Student], payments: Iterable[LedgerRow], month: int, year: int) -> MonthStats:
    students = list(students)
    payments = list(payments)
    index = index_payments(payments)
    collected = sum(
        p.amount for p in payments if p.month == month and p.year == year and p.status is PaymentStatus.PAID
    )
    pending = sum(
        s.monthly_fee for s in students if status_for_month(s, month, year, index) is PaymentStatus.UNPAID
    )
    return MonthStats(
        collected=collected,
        pending=pending,
        active_students=len(students),
        free_students=sum(1 for s in students if s.is_free),
    )


def revenue_series(
    students: Iterable[Student],
    payments: Iterable[LedgerRow],
    today: date,
    months: int = 6,
) -> list[RevenuePoint]:
    """Collected vs pending totals for the last ``months`` months, oldest first."""

    students = list(students)
    payments = list(payments)
    points: list[RevenuePoint] = []
    for back in range(months - 1, -1, -1):
        total = today.year * 12 + (today.month - 1) - back
        year, month = divmod(total, 12)
        stats = month_stats(students, payments, month, year)
        points.append(
            RevenuePoint(
                label=f"{MONTHS[month][:3]} {year}",
                month=month,
                year=year,
                collected=stats.collected,
                pending=stats.pending,
            )
        )
    return points


def expiring_on(students: Iterable[Student], day: date) -> list[Student]:
    return [s for s in students if s.subscription_end == day]


def expiring_tomorrow(students: Iterable[Student], today: date) -> list[Student]:
    return expiring_on(students, today + timedelta(days=1))
