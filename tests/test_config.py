import pytest
from fastapi.testclient import TestClient

from privsalary.api import create_app
from privsalary.config import Settings, get_settings, load_settings, validate_settings
from privsalary.oracle import write_oracle_key


def test_defaults(monkeypatch):
    for name in ("ENV", "COOLDOWN_SECONDS", "PROCESS_ID", "EVENT_LOG_BACKEND", "ORACLE_KEY_PATH"):
        monkeypatch.delenv("PRIVSALARY_" + name, raising=False)
    settings = load_settings()
    assert settings.env == "dev"
    assert settings.cooldown_seconds == 60
    assert settings.event_log_backend == "memory"
    assert settings.oracle_key_path is None
    assert validate_settings(settings) == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PRIVSALARY_COOLDOWN_SECONDS", "15")
    monkeypatch.setenv("PRIVSALARY_OWNER_ADDRESS", "0xboss")
    monkeypatch.setenv("PRIVSALARY_LOG_JSON", "false")
    settings = load_settings()
    assert settings.cooldown_seconds == 15
    assert settings.owner_address == "0xboss"
    assert settings.log_json is False


def test_malformed_integer(monkeypatch):
    monkeypatch.setenv("PRIVSALARY_COOLDOWN_SECONDS", "soon")
    with pytest.raises(ValueError):
        load_settings()


def test_get_settings_is_cached(monkeypatch):
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_validation_problems(tmp_path):
    settings = Settings(
        env="qa",
        cooldown_seconds=0,
        event_log_backend="s3",
        oracle_key_path=str(tmp_path / "missing.json"),
    )
    problems = validate_settings(settings)
    assert len(problems) == 4


def test_invalid_settings_refuse_to_start():
    with pytest.raises(RuntimeError):
        create_app(settings=Settings(cooldown_seconds=0, log_json=False))


def test_app_from_settings(tmp_path):
    key_path = tmp_path / "oracle.json"
    write_oracle_key(str(key_path), kid="oracle-file")
    settings = Settings(
        owner_address="0xboss",
        event_log_backend="sqlite_hash_chain",
        db_path=str(tmp_path / "db" / "events.db"),
        oracle_key_path=str(key_path),
        log_json=False,
    )
    client = TestClient(create_app(settings=settings))
    assert client.get("/state").json()["owner"] == "0xboss"
    assert client.post("/batches/open", headers={"X-Caller-Address": "0xboss"}).json()["batch_id"] == 1
    assert client.get("/events").json()[0]["kind"] == "BATCH_OPENED"
