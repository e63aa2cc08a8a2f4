from __future__ import annotations

import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from .constants import SESSION_JSON_PATH
from .errors import AuthError
from .settings_store import Settings

log = logging.getLogger(__name__)

ADMIN_ROLE = "Admin"


@dataclass(frozen=True)
class Session:
    user: str
    issued_at: datetime
    role: str = ADMIN_ROLE

    def to_dict(self) -> dict[str, str]:
        return {"user": self.user, "issued_at": self.issued_at.isoformat(), "role": self.role}

    @staticmethod
    def from_dict(d: dict) -> "Session":
        return Session(
            user=str(d["user"]),
            issued_at=datetime.fromisoformat(str(d["issued_at"])),
            role=str(d.get("role", ADMIN_ROLE)),
        )


def is_expired(session: Session, now: datetime, max_age: timedelta) -> bool:
    # Sessions have no hard expiry; this is only a cap for forgotten logins.
    return now - session.issued_at > max_age


class AdminAuth:
    def __init__(self, settings: Settings):
        self.email = settings.admin_email
        self.password = settings.admin_password
        self.max_age = timedelta(days=settings.session_max_age_days)

    def login(self, email: str, password: str, now: datetime) -> Session:
        if not self.password:
            raise AuthError("No admin password configured (set FEELEDGER_ADMIN_PASSWORD)")
        email_ok = hmac.compare_digest((email or "").strip().lower(), self.email.strip().lower())
        password_ok = hmac.compare_digest(password or "", self.password)
        if not (email_ok and password_ok):
            log.warning("Rejected admin login for %s", email)
            raise AuthError("Invalid admin credentials")
        return Session(user=self.email, issued_at=now)


class SessionStore:
    """Keeps the admin session between launches, like a browser's local storage."""

    def __init__(self, path: Path = SESSION_JSON_PATH):
        self.path = path

    def load(self, now: datetime, max_age: timedelta) -> Session | None:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                session = Session.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.error("Discarding unreadable session file %s: %s", self.path, e)
            self.clear()
            return None
        if is_expired(session, now, max_age):
            log.info("Admin session from %s expired", session.issued_at.isoformat())
            self.clear()
            return None
        return session

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(session.to_dict(), f, indent=2)
            f.write("\n")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
