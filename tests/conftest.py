import json
from datetime import datetime

import httpx
import pytest

from feeledger.constants import ROW_HEADERS
from feeledger.http_store import HttpRowStore
from feeledger.identity import ROW_KEY_COLUMN, CompositeMatchScheme, DerivedKeyScheme
from feeledger.logger import ErrorLogger
from feeledger.reconciler import Reconciler
from feeledger.service import LedgerService
from feeledger.storage import ExcelRowStore, MemoryRowStore

FIXED_NOW = datetime(2025, 3, 15, 10, 30, 0)
KEYED_HEADERS = ROW_HEADERS + [ROW_KEY_COLUMN]


class Clock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now


def sheet_service(backing, search_404=True, report_counts=True):
    """MockTransport handler that serves ``backing`` over the row-store REST surface."""

    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        path = request.url.path
        params = {k: v for k, v in request.url.params.items() if k != "sheet"}
        if request.method == "GET" and path == "/rows":
            return httpx.Response(200, json=backing.fetch_all())
        if request.method == "GET" and path == "/rows/search":
            rows = backing.search(params)
            if not rows and search_404:
                return httpx.Response(404, json={"error": "No rows found"})
            return httpx.Response(200, json=rows)
        if request.method == "POST" and path == "/rows":
            backing.insert(json.loads(request.content))
            return httpx.Response(201, json={"created": 1})
        if path.startswith("/rows/match/"):
            _, _, _, field, value = path.split("/", 4)
            if request.method == "PATCH":
                n = backing.update({field: value}, json.loads(request.content))
                return httpx.Response(200, json={"updated": n} if report_counts else {})
            if request.method == "DELETE":
                n = backing.delete({field: value})
                return httpx.Response(200, json={"deleted": n} if report_counts else {})
        return httpx.Response(405, json={"error": "Method not allowed"})

    handler.calls = calls
    return handler


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def memory_store():
    return MemoryRowStore(ROW_HEADERS)


@pytest.fixture
def reconciler(memory_store, clock):
    return Reconciler(memory_store, CompositeMatchScheme(), now=clock)


@pytest.fixture(params=["memory", "xlsx", "http"])
def any_reconciler(request, tmp_path, clock):
    """The same reconciler contract over each backend and its identity scheme."""

    if request.param == "memory":
        store = MemoryRowStore(ROW_HEADERS)
        scheme = CompositeMatchScheme()
    elif request.param == "xlsx":
        store = ExcelRowStore(tmp_path / "ledger.xlsx")
        store.ensure_workbook()
        scheme = CompositeMatchScheme()
    else:
        backing = MemoryRowStore(KEYED_HEADERS)
        store = HttpRowStore(
            "http://sheet.test",
            headers=KEYED_HEADERS,
            transport=httpx.MockTransport(sheet_service(backing)),
        )
        scheme = DerivedKeyScheme()
    rec = Reconciler(store, scheme, now=clock)
    yield rec
    store.close()


@pytest.fixture
def service(reconciler, tmp_path):
    return LedgerService(reconciler, notifier=None, err_logger=ErrorLogger(tmp_path / "error_log.txt"))


def register(rec, sid="369", fee=500, start="2025-01-01", **extra):
    data = {
        "id": sid,
        "username": extra.pop("username", f"Student {sid}"),
        "email": f"{sid}@example.com",
        "mobile": "+91 98765 43210",
        "monthly_fee": fee,
        "subscription_start": start,
    }
    data.update(extra)
    return rec.create_student(data)
