import httpx
import pytest

from conftest import register, sheet_service
from feeledger.constants import ROW_HEADERS
from feeledger.errors import StoreError
from feeledger.identity import CompositeMatchScheme
from feeledger.logger import ErrorLogger
from feeledger.models import PaymentStatus, Student
from feeledger.reconciler import Reconciler
from feeledger.service import LedgerService
from feeledger.settings_store import Settings
from feeledger.storage import MemoryRowStore


class FakeNotifier:
    def __init__(self, result=None):
        self.sent = []
        self.result = result or {"success": True}

    def send(self, mobile, message):
        self.sent.append((mobile, message))
        return dict(self.result)


def test_reads_return_models(service, reconciler):
    register(reconciler, "S1")
    register(reconciler, "S2")
    res = service.load_dashboard()
    assert res["success"] is True
    assert [s.id for s in res["students"]] == ["S1", "S2"]
    assert len(res["payments"]) == 2
    assert service.get_students()["students"] == res["students"]
    assert service.get_payments()["payments"] == res["payments"]


def test_write_results(service):
    res = service.create_student({"id": "S1", "username": "Asha", "monthly_fee": 500})
    assert res["success"] is True
    assert res["student"].id == "S1"

    res = service.record_payment("S1", 0, 2025, 500, True)
    assert (res["success"], res["action"]) == (True, "inserted")
    assert res["payment"].status is PaymentStatus.PAID

    res = service.update_profile("S1", {"username": "Asha K"})
    assert (res["success"], res["updated"]) == (True, 3)

    res = service.delete_student("S1")
    assert (res["success"], res["deleted"]) == (True, 3)


def test_domain_errors_become_failure_results(service):
    res = service.record_payment("ghost", 0, 2025, 500, True)
    assert res == {"success": False, "message": "Student ghost does not exist", "error": "NotFoundError"}

    res = service.create_student({"username": ""})
    assert (res["success"], res["error"]) == (False, "ValidationError")


def test_store_errors_become_failure_results(tmp_path):
    class DownStore(MemoryRowStore):
        def fetch_all(self):
            raise StoreError("Row store unreachable: timed out")

    service = LedgerService(Reconciler(DownStore(ROW_HEADERS), CompositeMatchScheme()))
    res = service.load_dashboard()
    assert res == {"success": False, "message": "Row store unreachable: timed out", "error": "StoreError"}


def test_unexpected_errors_are_logged_not_raised(tmp_path, reconciler):
    log_path = tmp_path / "error_log.txt"

    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    reconciler.record_payment = boom
    service = LedgerService(reconciler, err_logger=ErrorLogger(log_path))
    res = service.record_payment("S1", 0, 2025, 500, True)

    assert res["success"] is False
    assert res["error"] == "InternalError"
    assert "disk on fire" in log_path.read_text()
    assert "record_payment" in log_path.read_text()


def test_partial_delete_carries_counts(clock):
    class StickyStore(MemoryRowStore):
        def delete(self, match):
            self._rows.pop(0)
            return 1

    rec = Reconciler(StickyStore(ROW_HEADERS), CompositeMatchScheme(), now=clock)
    register(rec, "S1")
    res = LedgerService(rec).delete_student("S1")
    assert res["success"] is False
    assert res["error"] == "PartialDeleteError"
    assert (res["deleted"], res["remaining"]) == (1, 1)


def test_send_reminder(reconciler):
    notifier = FakeNotifier()
    service = LedgerService(reconciler, notifier=notifier)
    student = Student("S1", "Asha", mobile="9876543210")
    res = service.send_reminder(student, "pay up")
    assert res["success"] is True
    assert res["message"] == "SMS sent to Asha"
    assert notifier.sent == [("9876543210", "pay up")]


def test_send_reminder_failure_and_missing_notifier(reconciler):
    service = LedgerService(reconciler, notifier=FakeNotifier({"success": False, "error": "DND number"}))
    res = service.send_reminder(Student("S1", "Asha", mobile="9876543210"), "pay up")
    assert res == {"success": False, "error": "DND number", "message": "DND number"}

    res = LedgerService(reconciler).send_reminder(Student("S1"), "pay up")
    assert res["error"] == "NotConfigured"


@pytest.mark.parametrize("backend", ["memory", "xlsx"])
def test_from_settings_local_backends(tmp_path, backend):
    settings = Settings(backend=backend, xlsx_path=str(tmp_path / "ledger.xlsx"))
    service = LedgerService.from_settings(settings, notifier=FakeNotifier())
    try:
        assert service.scheme.name == "composite"
        assert service.create_student({"username": "A", "monthly_fee": 500})["success"]
        assert [s.username for s in service.get_students()["students"]] == ["A"]
    finally:
        service.close()
    if backend == "xlsx":
        assert (tmp_path / "ledger.xlsx").exists()


def test_from_settings_http_backend_uses_row_keys():
    backing = MemoryRowStore(ROW_HEADERS + ["row_key"])
    settings = Settings(backend="http", store_url="http://sheet.test/", store_token="t")
    service = LedgerService.from_settings(
        settings, transport=httpx.MockTransport(sheet_service(backing)), notifier=FakeNotifier()
    )
    try:
        assert service.scheme.name == "derived_key"
        assert service.create_student({"id": "369", "username": "A", "monthly_fee": 500})["success"]
        res = service.record_payment("369", 0, 2025, 500, True)
        assert res["payment"].key == "369:2025:00"
        assert backing.search({"row_key": "369:2025:00"})[0]["status"] == "Paid"
    finally:
        service.close()


def test_one_bad_row_does_not_hide_the_sheet(service, reconciler, memory_store):
    register(reconciler, "S1")
    memory_store.insert({"id": "S1", "username": "Student S1", "month": "Jan", "year": "2025", "amount": "500"})
    res = service.load_dashboard()
    assert res["success"] is True
    assert [s.id for s in res["students"]] == ["S1"]
    assert [(p.month, p.year) for p in res["payments"]] == [(2, 2025)]
