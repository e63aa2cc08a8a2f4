from datetime import date, datetime

import pytest

from feeledger.codec import RowCodec
from feeledger.errors import StoreError
from feeledger.models import LedgerRow, PaymentStatus, Student


def test_booleans_use_literal_strings():
    assert RowCodec.encode_bool(True) == "TRUE"
    assert RowCodec.encode_bool(False) == "FALSE"


@pytest.mark.parametrize("raw", ["TRUE", "true", " True ", "1", "yes", True])
def test_decode_bool_truthy(raw):
    assert RowCodec.decode_bool(raw) is True


@pytest.mark.parametrize("raw", ["FALSE", "", None, "0", "no", False])
def test_decode_bool_falsy(raw):
    assert RowCodec.decode_bool(raw) is False


def test_status_strings_are_exact():
    assert [RowCodec.encode_status(s) for s in PaymentStatus] == ["Paid", "Unpaid", "Free"]
    assert RowCodec.decode_status("paid") is PaymentStatus.PAID
    assert RowCodec.decode_status(" FREE") is PaymentStatus.FREE


def test_unknown_status_reads_as_unpaid():
    assert RowCodec.decode_status("") is PaymentStatus.UNPAID
    assert RowCodec.decode_status("pending") is PaymentStatus.UNPAID


def test_amounts():
    assert RowCodec.encode_amount(500) == "500"
    assert RowCodec.encode_amount(500.0) == "500"
    assert RowCodec.encode_amount(499.5) == "499.5"
    assert RowCodec.decode_amount("1,200") == 1200.0
    assert RowCodec.decode_amount("") == 0.0
    with pytest.raises(StoreError, match="monthly_fee"):
        RowCodec.decode_amount("five hundred", "monthly_fee")


def test_ints_tolerate_sheet_floats():
    assert RowCodec.decode_int("3.0", "month") == 3
    assert RowCodec.decode_int("", "month") is None
    assert RowCodec.encode_int(None) == ""
    with pytest.raises(StoreError):
        RowCodec.decode_int("March", "month")


def test_dates():
    assert RowCodec.encode_date(date(2025, 1, 1)) == "2025-01-01"
    assert RowCodec.decode_date("2025-02-01T00:00:00", "subscription_end") == date(2025, 2, 1)
    assert RowCodec.decode_date(datetime(2025, 2, 1, 9, 0), "subscription_end") == date(2025, 2, 1)
    assert RowCodec.decode_date("", "subscription_end") is None
    with pytest.raises(StoreError):
        RowCodec.decode_date("01/02/2025", "subscription_end")


def test_student_row_encoding():
    student = Student(
        id="369",
        username="Asha",
        monthly_fee=500.0,
        subscription_start=date(2025, 1, 1),
        subscription_end=date(2025, 2, 1),
        current_month_paid=True,
    )
    row = RowCodec.encode_student(student)
    assert row["monthly_fee"] == "500"
    assert row["subscription_end"] == "2025-02-01"
    assert row["current_month_paid"] == "TRUE"
    assert RowCodec.decode_student(row) == student


def test_decode_ledger_requires_period():
    row = {"id": "369", "month": "", "year": "", "amount": "500"}
    assert not RowCodec.is_ledger_row(row)
    with pytest.raises(StoreError, match="not a ledger row"):
        RowCodec.decode_ledger(row)


def test_decode_ledger():
    row = {"id": "369", "month": "0", "year": "2025", "amount": "500", "status": "Paid", "payment_date": "x"}
    assert RowCodec.decode_ledger(row, key="369:2025:00") == LedgerRow(
        "369", 0, 2025, 500.0, PaymentStatus.PAID, "x", "369:2025:00"
    )
    assert RowCodec.encode_ledger(RowCodec.decode_ledger(row))["status"] == "Paid"


def test_profile_snapshot_keeps_only_profile_columns():
    row = {"id": "1", "username": "A", "month": "2", "amount": "500", "row_key": "1:2025:02"}
    snap = RowCodec.profile_snapshot(row)
    assert snap["username"] == "A"
    assert snap["email"] == ""
    assert "month" not in snap and "row_key" not in snap
