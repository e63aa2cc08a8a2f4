from __future__ import annotations

import logging
import re
from typing import Any, Protocol

import httpx

from .constants import DEFAULT_MONTHLY_FEE, FAST2SMS_URL
from .models import Student

log = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, mobile: str, message: str) -> dict[str, Any]: ...


def clean_mobile(mobile: str) -> str:
    """Digits only, last ten (drops +91 and spacing)."""

    return re.sub(r"\D", "", mobile or "")[-10:]


class Fast2SmsNotifier:
    """Sends plain SMS through Fast2SMS's quick route.

    ``send`` never raises: every failure comes back as
    ``{"success": False, "error": ...}`` so callers can show a toast and move on.
    """

    def __init__(
        self,
        api_key: str,
        url: str = FAST2SMS_URL,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.url = url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def send(self, mobile: str, message: str) -> dict[str, Any]:
        if not mobile or not message:
            return {"success": False, "error": "Mobile number and message are required"}
        if not self.api_key:
            log.warning("FAST2SMS_API_KEY not configured - SMS will not be sent")
            return {"success": False, "error": "Fast2SMS API key not configured"}
        number = clean_mobile(mobile)
        if len(number) != 10:
            return {"success": False, "error": f"Not a valid mobile number: {mobile!r}"}

        payload = {"route": "q", "message": message, "language": "english", "flash": 0, "numbers": number}
        try:
            resp = self._client.post(self.url, json=payload, headers={"authorization": self.api_key})
        except httpx.HTTPError as e:
            log.error("SMS to %s failed: %s", number, e)
            return {"success": False, "error": str(e)}
        try:
            data = resp.json()
        except ValueError:
            data = {"message": resp.text[:200]}
        if resp.is_error or (isinstance(data, dict) and data.get("return") is False):
            error = data.get("message") if isinstance(data, dict) else None
            log.error("SMS to %s rejected (%s): %s", number, resp.status_code, error)
            return {"success": False, "error": str(error or f"HTTP {resp.status_code}")}
        log.info("SMS sent to %s", number)
        return {"success": True, "mobile": number, "data": data}


def payment_reminder_message(student: Student, default_fee: float = DEFAULT_MONTHLY_FEE) -> str:
    amount = student.monthly_fee or default_fee
    text = f"{amount:.0f}" if float(amount).is_integer() else f"{amount:.2f}"
    return f"Hi {student.username}, reminder to pay Rs.{text} for library fees this month. Thank you!"


def expiry_reminder_message(student: Student) -> str:
    end = student.subscription_end.strftime("%d/%m/%Y") if student.subscription_end else "soon"
    return (
        f"Hi {student.username}, your library subscription expires on {end}. "
        "Please renew to continue access. Contact admin for details."
    )
