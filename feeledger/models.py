from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from enum import Enum


class PaymentStatus(str, Enum):
    PAID = "Paid"
    UNPAID = "Unpaid"
    FREE = "Free"


@dataclass
class Student:
    id: str
    username: str = ""
    email: str = ""
    mobile: str = ""
    aadhar_number: str = ""
    monthly_fee: float = 0.0
    subscription_start: date | None = None
    subscription_end: date | None = None
    current_month_paid: bool = False

    @property
    def is_free(self) -> bool:
        # A zero fee is the only marker for a free student.
        return self.monthly_fee == 0


@dataclass
class LedgerRow:
    student_id: str
    month: int  # 0 = January
    year: int
    amount: float
    status: PaymentStatus
    payment_date: str = ""
    key: str = ""

    @property
    def period(self) -> tuple[int, int]:
        return self.year, self.month


@dataclass
class PaymentResult:
    action: str  # inserted | updated
    row: LedgerRow


def derive_status(monthly_fee: float, paid: bool) -> PaymentStatus:
    if monthly_fee == 0:
        return PaymentStatus.FREE
    return PaymentStatus.PAID if paid else PaymentStatus.UNPAID


def add_one_month(day: date) -> date:
    """Same day next month, clamped to the last day of that month."""

    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))
