from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

import httpx

from .errors import LedgerError, PartialDeleteError
from .logger import ErrorLogger
from .models import Student
from .notifier import Fast2SmsNotifier, Notifier
from .reconciler import Reconciler
from .settings_store import Settings
from .store_factory import build_scheme, open_store
from .views import list_payments, list_students

log = logging.getLogger(__name__)

Result = dict[str, Any]


class LedgerService:
    """Dashboard-facing operations.

    Every method returns a dict with ``success``. Failures carry a readable
    ``message`` and the error class name in ``error``; nothing raised by the
    store or the reconciler escapes. After a failed write the caller should
    re-fetch before retrying, since the store may or may not hold the write.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        notifier: Notifier | None = None,
        err_logger: ErrorLogger | None = None,
    ):
        self.reconciler = reconciler
        self.store = reconciler.store
        self.scheme = reconciler.scheme
        self.notifier = notifier
        self.err_logger = err_logger or ErrorLogger()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
        notifier: Notifier | None = None,
        err_logger: ErrorLogger | None = None,
    ) -> "LedgerService":
        scheme = build_scheme(settings)
        store = open_store(settings, scheme, transport=transport)
        reconciler = Reconciler(
            store,
            scheme,
            default_monthly_fee=settings.default_monthly_fee,
            student_id_prefix=settings.student_id_prefix,
        )
        if notifier is None:
            notifier = Fast2SmsNotifier(settings.sms_api_key, timeout=settings.request_timeout)
        return cls(reconciler, notifier=notifier, err_logger=err_logger)

    def close(self) -> None:
        self.store.close()
        close = getattr(self.notifier, "close", None)
        if close is not None:
            close()

    def _call(self, context: str, fn: Callable[[], Result]) -> Result:
        try:
            result = fn()
        except PartialDeleteError as e:
            log.error("%s: %s", context, e)
            return {
                "success": False,
                "message": str(e),
                "error": type(e).__name__,
                "deleted": e.deleted,
                "remaining": e.remaining,
            }
        except LedgerError as e:
            log.warning("%s failed: %s", context, e)
            return {"success": False, "message": str(e), "error": type(e).__name__}
        except Exception as e:
            log.exception("%s crashed", context)
            self.err_logger.log_exception(e, context)
            return {"success": False, "message": f"Unexpected error: {e}", "error": "InternalError"}
        return {"success": True, **result}

    # ---------------- Reads ----------------
    def get_students(self) -> Result:
        return self._call("get_students", lambda: {"students": list_students(self.store.fetch_all())})

    def get_payments(self) -> Result:
        return self._call(
            "get_payments", lambda: {"payments": list_payments(self.store.fetch_all(), self.scheme)}
        )

    def load_dashboard(self) -> Result:
        """Students and payments from a single fetch of the sheet."""

        def run() -> Result:
            rows = self.store.fetch_all()
            return {"students": list_students(rows), "payments": list_payments(rows, self.scheme)}

        return self._call("load_dashboard", run)

    # ---------------- Writes ----------------
    def create_student(self, data: Mapping[str, Any]) -> Result:
        def run() -> Result:
            student = self.reconciler.create_student(data)
            return {"message": "Student registered successfully", "student": student}

        return self._call("create_student", run)

    def update_profile(self, student_id: str, updates: Mapping[str, Any]) -> Result:
        def run() -> Result:
            updated = self.reconciler.update_profile(student_id, updates)
            return {"message": "Profile updated successfully", "updated": updated}

        return self._call("update_profile", run)

    def delete_student(self, student_id: str) -> Result:
        def run() -> Result:
            deleted = self.reconciler.delete_student(student_id)
            return {"message": "Student record removed", "deleted": deleted}

        return self._call("delete_student", run)

    def record_payment(self, student_id: str, month: int, year: int, amount: float, paid: bool) -> Result:
        def run() -> Result:
            result = self.reconciler.record_payment(student_id, month, year, amount, paid)
            return {"message": "Payment recorded", "action": result.action, "payment": result.row}

        return self._call("record_payment", run)

    # ---------------- Notifications ----------------
    def send_reminder(self, student: Student, message: str) -> Result:
        if self.notifier is None:
            return {"success": False, "message": "No notifier configured", "error": "NotConfigured"}
        try:
            result = dict(self.notifier.send(student.mobile, message))
        except Exception as e:
            log.exception("send_reminder crashed")
            self.err_logger.log_exception(e, "send_reminder")
            return {"success": False, "message": f"Unexpected error: {e}", "error": "InternalError"}
        if result.get("success"):
            result.setdefault("message", f"SMS sent to {student.username}")
        else:
            result.setdefault("message", str(result.get("error") or "Failed to send SMS"))
        return result
