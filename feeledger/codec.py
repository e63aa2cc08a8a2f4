from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping

from .constants import PROFILE_COLUMNS
from .errors import StoreError
from .models import LedgerRow, PaymentStatus, Student

TRUE = "TRUE"
FALSE = "FALSE"
_TRUTHY = {"true", "1", "yes", "y"}


class RowCodec:
    """String encodings of the flat row schema.

    The store only knows strings. ``"TRUE"``/``"FALSE"`` and
    ``"Paid"``/``"Unpaid"``/``"Free"`` are written exactly as shown and read
    back leniently, so rows edited by hand in the sheet still decode.
    """

    @staticmethod
    def encode_bool(value: bool) -> str:
        return TRUE if value else FALSE

    @staticmethod
    def decode_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return str(value or "").strip().lower() in _TRUTHY

    @staticmethod
    def encode_status(status: PaymentStatus) -> str:
        return PaymentStatus(status).value

    @staticmethod
    def decode_status(value: Any) -> PaymentStatus:
        text = str(value or "").strip().lower()
        for status in PaymentStatus:
            if status.value.lower() == text:
                return status
        return PaymentStatus.UNPAID

    @staticmethod
    def encode_amount(value: float) -> str:
        value = float(value)
        if value.is_integer():
            return str(int(value))
        return repr(value)

    @staticmethod
    def decode_amount(value: Any, column: str = "amount") -> float:
        text = str(value if value is not None else "").strip().replace(",", "")
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            raise StoreError(f"Column {column!r} holds a non-numeric value: {value!r}") from None

    @staticmethod
    def encode_int(value: int | None) -> str:
        return "" if value is None else str(int(value))

    @staticmethod
    def decode_int(value: Any, column: str) -> int | None:
        text = str(value if value is not None else "").strip()
        if not text:
            return None
        try:
            # Sheets tend to turn 3 into "3.0".
            return int(float(text))
        except ValueError:
            raise StoreError(f"Column {column!r} holds a non-integer value: {value!r}") from None

    @staticmethod
    def encode_date(value: date | None) -> str:
        return "" if value is None else value.isoformat()[:10]

    @staticmethod
    def decode_date(value: Any, column: str) -> date | None:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        text = str(value or "").strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise StoreError(f"Column {column!r} holds an invalid date: {value!r}") from None

    @staticmethod
    def encode_timestamp(value: datetime | None) -> str:
        return "" if value is None else value.isoformat(timespec="seconds")

    @classmethod
    def encode_student(cls, student: Student) -> dict[str, str]:
        return {
            "id": str(student.id),
            "username": student.username,
            "email": student.email,
            "mobile": student.mobile,
            "aadhar_number": student.aadhar_number,
            "monthly_fee": cls.encode_amount(student.monthly_fee),
            "subscription_start": cls.encode_date(student.subscription_start),
            "subscription_end": cls.encode_date(student.subscription_end),
            "current_month_paid": cls.encode_bool(student.current_month_paid),
        }

    @classmethod
    def decode_student(cls, row: Mapping[str, Any]) -> Student:
        return Student(
            id=str(row.get("id", "") or "").strip(),
            username=str(row.get("username", "") or ""),
            email=str(row.get("email", "") or ""),
            mobile=str(row.get("mobile", "") or ""),
            aadhar_number=str(row.get("aadhar_number", "") or ""),
            monthly_fee=cls.decode_amount(row.get("monthly_fee"), "monthly_fee"),
            subscription_start=cls.decode_date(row.get("subscription_start"), "subscription_start"),
            subscription_end=cls.decode_date(row.get("subscription_end"), "subscription_end"),
            current_month_paid=cls.decode_bool(row.get("current_month_paid")),
        )

    @classmethod
    def encode_ledger(cls, row: LedgerRow) -> dict[str, str]:
        return {
            "month": cls.encode_int(row.month),
            "year": cls.encode_int(row.year),
            "amount": cls.encode_amount(row.amount),
            "status": cls.encode_status(row.status),
            "payment_date": row.payment_date,
        }

    @classmethod
    def decode_ledger(cls, row: Mapping[str, Any], key: str = "") -> LedgerRow:
        month = cls.decode_int(row.get("month"), "month")
        year = cls.decode_int(row.get("year"), "year")
        if month is None or year is None:
            raise StoreError(f"Row for student {row.get('id')!r} is not a ledger row")
        return LedgerRow(
            student_id=str(row.get("id", "") or "").strip(),
            month=month,
            year=year,
            amount=cls.decode_amount(row.get("amount")),
            status=cls.decode_status(row.get("status")),
            payment_date=str(row.get("payment_date", "") or ""),
            key=key,
        )

    @staticmethod
    def is_ledger_row(row: Mapping[str, Any]) -> bool:
        return all(str(row.get(c, "") or "").strip() for c in ("month", "year"))

    @staticmethod
    def profile_snapshot(row: Mapping[str, Any]) -> dict[str, str]:
        return {c: "" if row.get(c) is None else str(row.get(c)) for c in PROFILE_COLUMNS}
