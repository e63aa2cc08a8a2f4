import json
from datetime import date

import httpx
import pytest

from feeledger.models import Student
from feeledger.notifier import (
    Fast2SmsNotifier,
    clean_mobile,
    expiry_reminder_message,
    payment_reminder_message,
)


def _notifier(handler, api_key="key"):
    return Fast2SmsNotifier(api_key, transport=httpx.MockTransport(handler))


def test_clean_mobile():
    assert clean_mobile("+91 98765-43210") == "9876543210"
    assert clean_mobile("") == ""


def test_send_posts_quick_route():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"return": True, "request_id": "abc"})

    res = _notifier(handler).send("+91 98765 43210", "hello")

    assert res["success"] is True
    assert res["mobile"] == "9876543210"
    body = json.loads(requests[0].content)
    assert body == {"route": "q", "message": "hello", "language": "english", "flash": 0, "numbers": "9876543210"}
    assert requests[0].headers["authorization"] == "key"


def test_send_reports_provider_rejection():
    res = _notifier(lambda r: httpx.Response(200, json={"return": False, "message": "Invalid Numbers"})).send(
        "9876543210", "hello"
    )
    assert res == {"success": False, "error": "Invalid Numbers"}


def test_send_reports_http_error():
    res = _notifier(lambda r: httpx.Response(401, text="unauthorised")).send("9876543210", "hello")
    assert res == {"success": False, "error": "unauthorised"}


def test_send_reports_transport_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    res = _notifier(handler).send("9876543210", "hello")
    assert res["success"] is False
    assert "timed out" in res["error"]


@pytest.mark.parametrize(
    "api_key,mobile,message,error",
    [
        ("", "9876543210", "hello", "API key not configured"),
        ("key", "", "hello", "required"),
        ("key", "12345", "hello", "Not a valid mobile number"),
    ],
)
def test_send_refuses_before_calling_out(api_key, mobile, message, error):
    def handler(request):
        raise AssertionError("no request expected")

    res = _notifier(handler, api_key=api_key).send(mobile, message)
    assert res["success"] is False
    assert error in res["error"]


def test_messages():
    student = Student("1", "Asha", monthly_fee=0, subscription_end=date(2025, 3, 16))
    assert "Rs.500 " in payment_reminder_message(student, 500)
    assert "Rs.650.50 " in payment_reminder_message(Student("2", "Ravi", monthly_fee=650.5))
    assert "expires on 16/03/2025" in expiry_reminder_message(student)
