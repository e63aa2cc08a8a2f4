import json
from datetime import date

from conftest import register
from feeledger.reminders import main, run_expiry_reminders
from feeledger.service import LedgerService
from feeledger.settings_store import Settings, SettingsStore

TODAY = date(2025, 3, 15)


class RecordingNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, mobile, message):
        if mobile in self.fail_for:
            return {"success": False, "error": "DND number"}
        self.sent.append((mobile, message))
        return {"success": True}


def test_reminds_students_expiring_tomorrow(reconciler):
    register(reconciler, "S1", username="Asha", start="2025-02-16")  # ends 2025-03-16
    register(reconciler, "S2", username="Ravi", start="2025-02-17")
    register(reconciler, "S3", username="Meera", start="2025-02-16", mobile="")
    register(reconciler, "S4", username="Dev", start="2025-02-16", mobile="9000000004")
    notifier = RecordingNotifier(fail_for={"9000000004"})

    summary = run_expiry_reminders(LedgerService(reconciler, notifier=notifier), TODAY, daily_limit=2)

    assert summary["success"] is True
    assert summary["students_checked"] == 4
    assert summary["expiring_tomorrow"] == 3
    assert summary["sms_sent"] == 1
    assert summary["within_limit"] is False
    assert [m for m, _ in notifier.sent] == ["+91 98765 43210"]
    assert "16/03/2025" in notifier.sent[0][1]
    results = {r["student"]: r for r in summary["results"]}
    assert results["Meera"] == {"student": "Meera", "mobile": "N/A", "sent": False, "error": "No mobile number"}
    assert results["Dev"]["error"] == "DND number"
    assert results["Asha"]["mobile"] == "9876543210"


def test_cli_prints_summary(tmp_path, capsys, monkeypatch):
    for var in ("FEELEDGER_BACKEND", "FEELEDGER_STORE_URL", "FAST2SMS_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path, environ={}).save(Settings(backend="memory"))

    code = main(["--settings", str(settings_path), "--today", "2025-03-15", "--verbose"])

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["students_checked"] == 0
    assert summary["sms_sent"] == 0
    assert summary["within_limit"] is True
