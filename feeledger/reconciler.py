from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from .codec import RowCodec
from .constants import DEFAULT_MONTHLY_FEE, LEDGER_COLUMNS, PROFILE_COLUMNS
from .errors import IntegrityViolation, NotFoundError, PartialDeleteError, StoreError, ValidationError
from .identity import ROW_KEY_COLUMN, IdentityScheme
from .models import LedgerRow, PaymentResult, PaymentStatus, Student, add_one_month, derive_status
from .storage import Row, RowStore

log = logging.getLogger(__name__)

# current_month_paid mirrors each ledger row's own status, so it is never broadcast.
LEDGER_SCOPED = set(LEDGER_COLUMNS) | {ROW_KEY_COLUMN, "current_month_paid"}
AADHAR_RE = re.compile(r"^\d{12}$")


def next_id(prefix: str, existing_ids: Iterable[str]) -> str:
    max_n = 0
    for eid in existing_ids:
        if not eid.startswith(prefix):
            continue
        tail = eid[len(prefix) :]
        m = re.match(r"0*(\d+)$", tail)
        if m:
            max_n = max(max_n, int(m.group(1)))
    return f"{prefix}{max_n + 1:04d}"


def _require_id(student_id: Any) -> str:
    sid = str(student_id if student_id is not None else "").strip()
    if not sid:
        raise ValidationError("Student id is required")
    return sid


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a whole number")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number, got {value!r}") from None
    return number


def _as_amount(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = float(str(value).strip().replace(",", ""))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"{name} must be a finite number, zero or more")
    return amount


def _as_date(value: Any, name: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date, got {value!r}") from None


def _check_aadhar(value: Any) -> str:
    text = re.sub(r"\s+", "", str(value or ""))
    if text and not AADHAR_RE.match(text):
        raise ValidationError("Aadhar card number must be exactly 12 digits")
    return text


class Reconciler:
    """Keeps the flat row store consistent with the student/ledger model.

    Each student has a registration row (profile columns, empty month/year)
    followed by one ledger row per recorded month. Ledger rows copy the
    profile columns, so profile edits are broadcast to every row of the
    student. Nothing here is transactional: each write is a separate store
    call, and a failure is reported rather than retried.
    """

    def __init__(
        self,
        store: RowStore,
        scheme: IdentityScheme,
        default_monthly_fee: float = DEFAULT_MONTHLY_FEE,
        student_id_prefix: str = "STU-",
        now: Callable[[], datetime] = datetime.now,
    ):
        if scheme.needs_composite_writes and not store.supports_composite_match:
            raise ValueError(f"{type(store).__name__} cannot be used with the {scheme.name} identity scheme")
        missing = [c for c in scheme.extra_columns if c not in store.headers]
        if missing:
            raise ValueError(f"Row store lacks identity column(s): {', '.join(missing)}")
        self.store = store
        self.scheme = scheme
        self.default_monthly_fee = default_monthly_fee
        self.student_id_prefix = student_id_prefix
        self.now = now

    # ---------------- Lookups ----------------
    def _profile_row(self, student_id: str) -> Row:
        rows = self.store.search(self.scheme.profile_match(student_id))
        if not rows:
            raise NotFoundError(f"Student {student_id} does not exist")
        # Rows are appended in creation order, so the first is the registration row.
        return rows[0]

    def get_student(self, student_id: str) -> Student:
        return RowCodec.decode_student(self._profile_row(_require_id(student_id)))

    # ---------------- Payments ----------------
    def record_payment(self, student_id: Any, month: Any, year: Any, amount: Any, paid: bool) -> PaymentResult:
        sid = _require_id(student_id)
        month = _as_int(month, "month")
        if not 0 <= month <= 11:
            raise ValidationError("month must be between 0 (January) and 11 (December)")
        year = _as_int(year, "year")
        if year <= 0:
            raise ValidationError("year must be positive")
        amount = _as_amount(amount, "amount")

        profile = self._profile_row(sid)
        student = RowCodec.decode_student(profile)
        status = derive_status(student.monthly_fee, RowCodec.decode_bool(paid))
        if status is PaymentStatus.FREE:
            amount = 0.0
        payment_date = RowCodec.encode_timestamp(self.now()) if status is PaymentStatus.PAID else ""
        ledger = LedgerRow(sid, month, year, amount, status, payment_date)
        mirror = RowCodec.encode_bool(status is not PaymentStatus.UNPAID)

        match = self.scheme.ledger_match(sid, month, year)
        existing = self.store.search(match)
        if len(existing) > 1:
            raise IntegrityViolation(
                f"{len(existing)} ledger rows exist for student {sid}, month {month}, year {year}"
            )

        if existing:
            fields = {
                "amount": RowCodec.encode_amount(amount),
                "status": RowCodec.encode_status(status),
                "payment_date": payment_date,
                "current_month_paid": mirror,
            }
            touched = self.store.update(match, fields)
            if touched != 1:
                raise IntegrityViolation(
                    f"Update of student {sid} {month}/{year} touched {touched} rows instead of 1"
                )
            action = "updated"
            written = {**existing[0], **fields}
        else:
            written = {
                **RowCodec.profile_snapshot(profile),
                **RowCodec.encode_ledger(ledger),
                **self.scheme.ledger_fields(sid, month, year),
                "current_month_paid": mirror,
            }
            self.store.insert(written)
            action = "inserted"

        ledger.key = self.scheme.key_of(written)
        log.info("Ledger row %s for %s %d/%d: %s %s", action, sid, month, year, status.value, amount)
        return PaymentResult(action=action, row=ledger)

    # ---------------- Profile ----------------
    def update_profile(self, student_id: Any, updates: Mapping[str, Any]) -> int:
        sid = _require_id(student_id)
        fields = dict(updates or {})
        if "id" in fields:
            if str(fields.pop("id")).strip() != sid:
                raise ValidationError("A student's id cannot be changed")
        ledger_keys = sorted(LEDGER_SCOPED & set(fields))
        if ledger_keys:
            raise ValidationError(f"Ledger fields cannot be edited through the profile: {', '.join(ledger_keys)}")
        is_free = fields.pop("is_free", None)
        unknown = sorted(set(fields) - set(PROFILE_COLUMNS))
        if unknown:
            raise ValidationError(f"Unknown profile field(s): {', '.join(unknown)}")
        if not fields and is_free is None:
            raise ValidationError("Nothing to update")
        if "username" in fields and not str(fields["username"] or "").strip():
            raise ValidationError("username cannot be empty")
        if "aadhar_number" in fields:
            fields["aadhar_number"] = _check_aadhar(fields["aadhar_number"])
        fee = _as_amount(fields["monthly_fee"], "monthly_fee") if "monthly_fee" in fields else None
        start = _as_date(fields.get("subscription_start"), "subscription_start")
        end = _as_date(fields.get("subscription_end"), "subscription_end")

        student = self.get_student(sid)

        if is_free is not None:
            if RowCodec.decode_bool(is_free):
                if fee is not None and fee > 0:
                    raise ValidationError("A free student must have a monthly fee of 0")
                fee = 0.0
            elif fee is None:
                fee = student.monthly_fee if student.monthly_fee > 0 else self.default_monthly_fee
            elif fee == 0:
                raise ValidationError("A monthly fee of 0 marks the student as free")
        if fee is not None:
            fields["monthly_fee"] = RowCodec.encode_amount(fee)

        if start is not None and "subscription_end" not in fields:
            end = add_one_month(start)
        if start is not None or end is not None:
            new_start = start or student.subscription_start
            new_end = end or student.subscription_end
            if new_start and new_end and new_end < new_start:
                raise ValidationError("subscription_end cannot be before subscription_start")
        if "subscription_start" in fields:
            fields["subscription_start"] = RowCodec.encode_date(start)
        if end is not None or "subscription_end" in fields:
            fields["subscription_end"] = RowCodec.encode_date(end)
        fields = {k: "" if v is None else str(v).strip() for k, v in fields.items()}

        touched = self.store.update(self.scheme.profile_match(sid), fields)
        if touched == 0:
            raise IntegrityViolation(f"Profile update for student {sid} matched no rows")
        log.info("Profile of %s updated on %d row(s): %s", sid, touched, ", ".join(sorted(fields)))
        return touched

    # ---------------- Lifecycle ----------------
    def delete_student(self, student_id: Any) -> int:
        sid = _require_id(student_id)
        match = self.scheme.profile_match(sid)
        total = len(self.store.search(match))
        if total == 0:
            raise NotFoundError(f"Student {sid} does not exist")

        try:
            self.store.delete(match)
        except StoreError as e:
            remaining = len(self.store.search(match))
            if remaining == total:
                raise
            if remaining:
                raise PartialDeleteError(sid, total - remaining, remaining) from e
            log.warning("Delete of %s reported %s but no rows remain", sid, e)
            return total

        remaining = len(self.store.search(match))
        if remaining:
            raise PartialDeleteError(sid, total - remaining, remaining)
        log.info("Deleted student %s (%d row(s))", sid, total)
        return total

    def create_student(self, data: Mapping[str, Any]) -> Student:
        data = dict(data or {})
        is_free = data.pop("is_free", None)
        unknown = sorted(set(data) - set(PROFILE_COLUMNS))
        if unknown:
            raise ValidationError(f"Unknown student field(s): {', '.join(unknown)}")
        username = str(data.get("username") or "").strip()
        if not username:
            raise ValidationError("username is required")
        aadhar = _check_aadhar(data.get("aadhar_number"))

        raw_fee = data.get("monthly_fee")
        fee = None if raw_fee is None or raw_fee == "" else _as_amount(raw_fee, "monthly_fee")
        if is_free is not None and RowCodec.decode_bool(is_free):
            if fee is not None and fee > 0:
                raise ValidationError("A free student must have a monthly fee of 0")
            fee = 0.0
        elif fee is None:
            raise ValidationError("monthly_fee is required unless the student is free")
        elif is_free is not None and fee == 0:
            raise ValidationError("A monthly fee of 0 marks the student as free")

        today = self.now()
        start = _as_date(data.get("subscription_start"), "subscription_start") or today.date()
        end = _as_date(data.get("subscription_end"), "subscription_end") or add_one_month(start)
        if end < start:
            raise ValidationError("subscription_end cannot be before subscription_start")

        sid = str(data.get("id") or "").strip()
        if sid:
            if self.store.search(self.scheme.profile_match(sid)):
                raise ValidationError(f"Student id {sid} is already registered")
        else:
            existing = {str(r.get("id", "")) for r in self.store.fetch_all()}
            sid = next_id(self.student_id_prefix, existing)

        status = derive_status(fee, RowCodec.decode_bool(data.get("current_month_paid")))
        mirror = status is not PaymentStatus.UNPAID
        student = Student(
            id=sid,
            username=username,
            email=str(data.get("email") or "").strip(),
            mobile=str(data.get("mobile") or "").strip(),
            aadhar_number=aadhar,
            monthly_fee=fee,
            subscription_start=start,
            subscription_end=end,
            current_month_paid=mirror,
        )
        profile = RowCodec.encode_student(student)
        self.store.insert(profile)
        log.info("Registered student %s (%s)", sid, username)

        month, year = today.month - 1, today.year
        ledger = LedgerRow(
            sid,
            month,
            year,
            0.0 if status is PaymentStatus.FREE else fee,
            status,
            RowCodec.encode_timestamp(today) if status is PaymentStatus.PAID else "",
        )
        row = {
            **profile,
            **RowCodec.encode_ledger(ledger),
            **self.scheme.ledger_fields(sid, month, year),
        }
        try:
            self.store.insert(row)
        except StoreError as e:
            raise StoreError(
                f"Student {sid} was registered but the ledger row for {month + 1}/{year} was not written: {e}"
            ) from e
        return student
