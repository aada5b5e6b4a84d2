"""
Tests for settings, data-dir resolution and engine construction.
"""
from pathlib import Path

from sqlalchemy import text

from config.paths import DATABASE_FILE_NAME, default_database_url, resolve_data_dir
from config.settings import Settings
from storage.database import build_engine, engine_options


def test_resolve_data_dir_creates_override(tmp_path):
    target = tmp_path / "nested" / "data"
    assert resolve_data_dir(str(target)) == target.resolve()
    assert target.is_dir()


def test_resolve_data_dir_defaults_under_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve_data_dir() == (tmp_path / "data").resolve()
    assert resolve_data_dir("   ") == (tmp_path / "data").resolve()


def test_default_database_url_points_at_data_dir(tmp_path):
    url = default_database_url(str(tmp_path))
    assert url == f"sqlite:///{(tmp_path / DATABASE_FILE_NAME).resolve()}"


def test_settings_builds_sqlite_url_from_data_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("AGENTDESK_APP_DATA_DIR", str(tmp_path))
    settings = Settings()
    assert settings.database_url.endswith(f"{Path(tmp_path).resolve().name}/{DATABASE_FILE_NAME}")


def test_settings_keeps_explicit_database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://agentdesk@db/agentdesk")
    assert Settings().database_url == "postgresql://agentdesk@db/agentdesk"


def test_engine_options_by_backend():
    assert engine_options("sqlite:///x.db")["connect_args"] == {"check_same_thread": False}
    pooled = engine_options("postgresql://agentdesk@db/agentdesk")
    assert pooled["pool_size"] == 5
    assert "connect_args" not in pooled


def test_sqlite_engine_runs_in_wal_mode(tmp_path):
    engine = build_engine(default_database_url(str(tmp_path)))
    try:
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
    finally:
        engine.dispose()
