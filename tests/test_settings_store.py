import json

from feeledger.settings_store import Settings, SettingsStore


def test_missing_file_is_created_with_defaults(tmp_path):
    path = tmp_path / "settings.json"
    settings = SettingsStore(path, environ={}).load()
    assert settings.backend == "xlsx"
    assert settings.default_monthly_fee == 500
    assert json.loads(path.read_text())["sheet_name"] == "Student"


def test_bad_values_fall_back(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "backend": "postgres",
                "identity_scheme": "uuid",
                "ui_scaling": 3,
                "default_monthly_fee": -1,
                "request_timeout": "soon",
                "session_max_age_days": 0,
                "store_url": "https://sheet.example/api/",
            }
        )
    )
    settings = SettingsStore(path, environ={}).load()
    assert settings.backend == "xlsx"
    assert settings.identity_scheme == ""
    assert settings.ui_scaling == 1.4
    assert settings.default_monthly_fee == 500
    assert settings.request_timeout == 10.0
    assert settings.session_max_age_days == 1
    assert settings.store_url == "https://sheet.example/api"


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "settings.json"
    SettingsStore(path, environ={}).save(Settings(backend="xlsx", admin_email="file@library.local"))
    env = {
        "FEELEDGER_BACKEND": "http",
        "FEELEDGER_STORE_URL": "https://sheet.example",
        "FEELEDGER_STORE_TOKEN": "tok",
        "FEELEDGER_ADMIN_PASSWORD": "pw",
        "FAST2SMS_API_KEY": "sms",
        "FEELEDGER_ADMIN_EMAIL": "",
    }
    settings = SettingsStore(path, environ=env).load()
    assert settings.backend == "http"
    assert settings.store_url == "https://sheet.example"
    assert (settings.store_token, settings.admin_password, settings.sms_api_key) == ("tok", "pw", "sms")
    # Empty variables do not override.
    assert settings.admin_email == "file@library.local"


def test_secrets_are_never_written(tmp_path):
    path = tmp_path / "settings.json"
    SettingsStore(path, environ={}).save(Settings(store_token="tok", admin_password="pw", sms_api_key="sms"))
    saved = json.loads(path.read_text())
    assert not {"store_token", "admin_password", "sms_api_key"} & set(saved)
