from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from .constants import DEFAULT_MONTHLY_FEE, MONTHS
from .models import LedgerRow, PaymentStatus, Student
from .notifier import payment_reminder_message
from .service import LedgerService, Result
from .views import MonthStats, filter_by_status, index_payments, month_stats, sort_by_desk, status_for_month

log = logging.getLogger(__name__)

STATUS_ACTIONS = ("paid", "unpaid", "free")


@dataclass
class StudentView:
    id: str
    username: str
    mobile: str
    monthly_fee: float
    status: PaymentStatus
    busy: bool = False


class DashboardController:
    """State behind the admin dashboard.

    Holds the last lists fetched from the store and applies status changes
    optimistically: the in-memory view changes first, and is put back to the
    previous lists (then re-fetched) when the write fails. A student with a
    write in flight cannot be changed again until it finishes.
    """

    def __init__(
        self,
        service: LedgerService,
        default_monthly_fee: float = DEFAULT_MONTHLY_FEE,
        today: date | None = None,
    ):
        today = today or date.today()
        self.service = service
        self.default_monthly_fee = default_monthly_fee
        self.month = today.month - 1
        self.year = today.year
        self.status_filter = "all"
        self.students: list[Student] = []
        self.payments: list[LedgerRow] = []
        self._in_flight: set[str] = set()

    # ---------------- Reads ----------------
    def refresh(self) -> Result:
        res = self.service.load_dashboard()
        if res["success"]:
            self.students = res["students"]
            self.payments = res["payments"]
        return res

    def select_period(self, month: int, year: int) -> None:
        if not 0 <= month <= 11:
            raise ValueError(f"month out of range: {month}")
        self.month, self.year = month, year

    @property
    def period_label(self) -> str:
        return f"{MONTHS[self.month]} {self.year}"

    def find(self, student_id: str) -> Student | None:
        return next((s for s in self.students if s.id == student_id), None)

    def is_busy(self, student_id: str) -> bool:
        return student_id in self._in_flight

    def rows(self) -> list[StudentView]:
        index = index_payments(self.payments)
        shown = filter_by_status(self.students, self.payments, self.month, self.year, self.status_filter)
        return [
            StudentView(
                id=s.id,
                username=s.username,
                mobile=s.mobile,
                monthly_fee=s.monthly_fee,
                status=status_for_month(s, self.month, self.year, index),
                busy=self.is_busy(s.id),
            )
            for s in sort_by_desk(shown)
        ]

    def stats(self) -> MonthStats:
        return month_stats(self.students, self.payments, self.month, self.year)

    # ---------------- Status changes ----------------
    def set_status(self, student_id: str, new_status: str) -> Result:
        if new_status not in STATUS_ACTIONS:
            raise ValueError(f"Unknown status: {new_status!r}")
        if self.is_busy(student_id):
            return {"success": False, "message": f"An update for {student_id} is already in progress", "error": "InFlight"}
        student = self.find(student_id)
        if student is None:
            return {"success": False, "message": f"Student {student_id} is not loaded", "error": "NotFoundError"}

        snapshot = (list(self.students), list(self.payments))
        self._in_flight.add(student_id)
        try:
            res = self._apply_status(student, new_status)
        finally:
            self._in_flight.discard(student_id)

        if not res["success"]:
            log.warning("Reverting %s to last known state: %s", student_id, res.get("message"))
            self.students, self.payments = snapshot
            # The store may hold part of the write; resync if it answers.
            self.refresh()
        return res

    def _apply_status(self, student: Student, new_status: str) -> Result:
        if new_status == "free":
            self._replace_student(student.id, monthly_fee=0.0)
            return self.service.update_profile(student.id, {"is_free": True})

        fee = student.monthly_fee
        if student.is_free:
            fee = self.default_monthly_fee
            self._replace_student(student.id, monthly_fee=fee)
            res = self.service.update_profile(student.id, {"is_free": False, "monthly_fee": fee})
            if not res["success"]:
                return res

        paid = new_status == "paid"
        self._replace_payment(
            LedgerRow(
                student.id,
                self.month,
                self.year,
                fee,
                PaymentStatus.PAID if paid else PaymentStatus.UNPAID,
            )
        )
        res = self.service.record_payment(student.id, self.month, self.year, fee, paid)
        if res["success"]:
            self._replace_payment(res["payment"])
        return res

    def _replace_student(self, student_id: str, **changes: Any) -> None:
        self.students = [dataclasses.replace(s, **changes) if s.id == student_id else s for s in self.students]

    def _replace_payment(self, row: LedgerRow) -> None:
        kept = [
            p
            for p in self.payments
            if not (p.student_id == row.student_id and p.month == row.month and p.year == row.year)
        ]
        self.payments = kept + [row]

    # ---------------- Other actions ----------------
    def register(self, data: Mapping[str, Any]) -> Result:
        res = self.service.create_student(data)
        if res["success"]:
            self.refresh()
        return res

    def edit(self, student_id: str, updates: Mapping[str, Any]) -> Result:
        res = self.service.update_profile(student_id, updates)
        self.refresh()
        return res

    def delete(self, student_id: str) -> Result:
        res = self.service.delete_student(student_id)
        self.refresh()
        return res

    def remind(self, student_id: str) -> Result:
        student = self.find(student_id)
        if student is None:
            return {"success": False, "message": f"Student {student_id} is not loaded", "error": "NotFoundError"}
        return self.service.send_reminder(student, payment_reminder_message(student, self.default_monthly_fee))
