"""Tests for settings loading."""

import pytest

from access_guard.config import Settings, get_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)  # no stray .env
    cfg = Settings()
    assert cfg.POLL_INTERVAL_SECONDS == 30.0
    assert cfg.DATABASE_URL.startswith("sqlite+aiosqlite://")
    assert cfg.HISTORY_DEFAULT_DAYS == 7


def test_environment_override(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ACCESS_GUARD_POLL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("ACCESS_GUARD_BACKEND_RETRY_ATTEMPTS", "5")
    cfg = get_settings()
    assert cfg.POLL_INTERVAL_SECONDS == 0.5
    assert cfg.BACKEND_RETRY_ATTEMPTS == 5


def test_dotenv_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    (tmp_path / ".env").write_text("ACCESS_GUARD_AUDIT_HISTORY_LIMIT=3\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    assert get_settings().AUDIT_HISTORY_LIMIT == 3
