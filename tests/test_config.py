# tests/test_config.py

import pytest
from sqlalchemy.engine import make_url

from gtd_tasks.config import SQLITE_FALLBACK_URL, Settings, build_database_url

ENV_KEYS = [
    "DATABASE_URL",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "PORT",
    "HOST",
    "DEBUG",
    "LOG_FORMAT",
    "SWEEP_INTERVAL_SECONDS",
    "SWEEP_ON_READ",
    "CORS_ORIGINS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_environment():
    settings = Settings.from_env()
    assert settings.database_url == SQLITE_FALLBACK_URL
    assert settings.port == 3742
    assert settings.debug is False
    assert settings.sweep_interval_seconds == 300.0
    assert settings.sweep_on_read is True
    assert settings.cors_origins == ("*",)


def test_postgres_url_from_db_variables(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_PORT", "5433")
    monkeypatch.setenv("DB_NAME", "gtd")
    monkeypatch.setenv("DB_USER", "gtd_user")
    monkeypatch.setenv("DB_PASSWORD", "s3cret")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql+psycopg2://gtd_user:s3cret@db:5433/gtd"
    assert "s3cret" not in settings.masked_database_url()


def test_database_url_overrides_db_variables(monkeypatch):
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./other.db")
    assert Settings.from_env().database_url == "sqlite:///./other.db"


def test_flags_and_numbers(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "30")
    monkeypatch.setenv("SWEEP_ON_READ", "no")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173, https://gtd.example.com")

    settings = Settings.from_env()

    assert settings.debug is True
    assert settings.port == 3742
    assert settings.sweep_interval_seconds == 30.0
    assert settings.sweep_on_read is False
    assert settings.cors_origins == ("http://localhost:5173", "https://gtd.example.com")


def test_build_database_url_without_host_falls_back_to_sqlite():
    assert build_database_url(None, 5432, "gtd", "u", "p") == SQLITE_FALLBACK_URL
    assert build_database_url("db", 5432, "gtd", "", "") == "postgresql+psycopg2://db:5432/gtd"


def test_build_database_url_escapes_credentials():
    url = make_url(build_database_url("db", 5432, "gtd", "gtd_user", "p@ss/word:#1"))

    assert url.host == "db"
    assert url.port == 5432
    assert url.database == "gtd"
    assert url.username == "gtd_user"
    assert url.password == "p@ss/word:#1"
