from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .constants import (
    DATA_XLSX_PATH,
    DEFAULT_MONTHLY_FEE,
    SESSION_MAX_AGE_DAYS,
    SETTINGS_JSON_PATH,
    SMS_DAILY_LIMIT,
    STUDENTS_SHEET,
)

BACKENDS = ("xlsx", "memory", "http")
IDENTITY_SCHEMES = ("", "composite", "derived_key")

# Secrets are never written to settings.json; they come from the environment.
ENV_OVERRIDES = {
    "FEELEDGER_BACKEND": "backend",
    "FEELEDGER_STORE_URL": "store_url",
    "FEELEDGER_STORE_TOKEN": "store_token",
    "FEELEDGER_ADMIN_EMAIL": "admin_email",
    "FEELEDGER_ADMIN_PASSWORD": "admin_password",
    "FAST2SMS_API_KEY": "sms_api_key",
}
SECRET_FIELDS = {"store_token", "admin_password", "sms_api_key"}


def _float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    backend: str = "xlsx"  # xlsx | memory | http
    identity_scheme: str = ""  # "" picks the backend's default
    xlsx_path: str = str(DATA_XLSX_PATH)
    sheet_name: str = STUDENTS_SHEET
    store_url: str = ""
    store_token: str = ""
    request_timeout: float = 10.0
    student_id_prefix: str = "STU-"
    default_monthly_fee: float = DEFAULT_MONTHLY_FEE
    admin_email: str = "admin@library.local"
    admin_password: str = ""
    session_max_age_days: int = SESSION_MAX_AGE_DAYS
    sms_api_key: str = ""
    sms_daily_limit: int = SMS_DAILY_LIMIT
    appearance_mode: str = "Light"  # Light | Dark | System
    ui_scaling: float = 1.0

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Settings":
        backend = str(d.get("backend", "xlsx")).strip().lower()
        if backend not in BACKENDS:
            backend = "xlsx"
        scheme = str(d.get("identity_scheme", "")).strip().lower()
        if scheme not in IDENTITY_SCHEMES:
            scheme = ""
        # Keep scaling in a sane range to avoid blurry fractional scaling.
        scale = min(max(_float(d.get("ui_scaling", 1.0), 1.0), 0.8), 1.4)
        fee = _float(d.get("default_monthly_fee", DEFAULT_MONTHLY_FEE), DEFAULT_MONTHLY_FEE)
        if fee < 0:
            fee = DEFAULT_MONTHLY_FEE
        timeout = _float(d.get("request_timeout", 10.0), 10.0)
        if timeout <= 0:
            timeout = 10.0
        try:
            max_age = int(d.get("session_max_age_days", SESSION_MAX_AGE_DAYS))
        except (TypeError, ValueError):
            max_age = SESSION_MAX_AGE_DAYS
        try:
            sms_limit = int(d.get("sms_daily_limit", SMS_DAILY_LIMIT))
        except (TypeError, ValueError):
            sms_limit = SMS_DAILY_LIMIT
        return Settings(
            backend=backend,
            identity_scheme=scheme,
            xlsx_path=str(d.get("xlsx_path", DATA_XLSX_PATH)),
            sheet_name=str(d.get("sheet_name", STUDENTS_SHEET)) or STUDENTS_SHEET,
            store_url=str(d.get("store_url", "")).rstrip("/"),
            store_token=str(d.get("store_token", "")),
            request_timeout=timeout,
            student_id_prefix=str(d.get("student_id_prefix", "STU-")),
            default_monthly_fee=fee,
            admin_email=str(d.get("admin_email", "admin@library.local")),
            admin_password=str(d.get("admin_password", "")),
            session_max_age_days=max(max_age, 1),
            sms_api_key=str(d.get("sms_api_key", "")),
            sms_daily_limit=max(sms_limit, 0),
            appearance_mode=str(d.get("appearance_mode", "Light")),
            ui_scaling=scale,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "identity_scheme": self.identity_scheme,
            "xlsx_path": self.xlsx_path,
            "sheet_name": self.sheet_name,
            "store_url": self.store_url,
            "request_timeout": self.request_timeout,
            "student_id_prefix": self.student_id_prefix,
            "default_monthly_fee": self.default_monthly_fee,
            "admin_email": self.admin_email,
            "session_max_age_days": self.session_max_age_days,
            "sms_daily_limit": self.sms_daily_limit,
            "appearance_mode": self.appearance_mode,
            "ui_scaling": self.ui_scaling,
        }


class SettingsStore:
    def __init__(self, path: Path = SETTINGS_JSON_PATH, environ: Mapping[str, str] | None = None):
        self.path = path
        self.environ = os.environ if environ is None else environ

    def load(self) -> Settings:
        if not self.path.exists():
            settings = Settings()
            self.save(settings)
            return self._apply_env(settings)

        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return self._apply_env(Settings.from_dict(data if isinstance(data, dict) else {}))

    def save(self, settings: Settings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
            f.write("\n")

    def _apply_env(self, settings: Settings) -> Settings:
        overrides = {
            attr: self.environ[var]
            for var, attr in ENV_OVERRIDES.items()
            if self.environ.get(var)
        }
        if not overrides:
            return settings
        merged = settings.to_dict()
        for attr in SECRET_FIELDS:
            merged[attr] = getattr(settings, attr)
        merged.update(overrides)
        return Settings.from_dict(merged)
