"""Settings loaded once from environment variables (+ optional .env)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL, make_url

load_dotenv(override=False)

SQLITE_FALLBACK_URL = "sqlite:///./gtd_tasks.db"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def build_database_url(
    host: Optional[str],
    port: int,
    name: str,
    user: str,
    password: str,
) -> str:
    if not host:
        return SQLITE_FALLBACK_URL
    return URL.create(
        "postgresql+psycopg2",
        username=user or None,
        password=password or None,
        host=host,
        port=port,
        database=name,
    ).render_as_string(hide_password=False)


@dataclass(frozen=True)
class Settings:
    database_url: str = SQLITE_FALLBACK_URL
    host: str = "0.0.0.0"
    port: int = 3742
    debug: bool = False
    log_format: str = "dev"
    sweep_interval_seconds: float = 300.0
    sweep_on_read: bool = True
    cors_origins: tuple = ("*",)

    @staticmethod
    def from_env() -> "Settings":
        database_url = _env("DATABASE_URL").strip() or build_database_url(
            host=_env("DB_HOST").strip() or None,
            port=_env_int("DB_PORT", 5432),
            name=_env("DB_NAME", "gtd"),
            user=_env("DB_USER"),
            password=_env("DB_PASSWORD"),
        )
        return Settings(
            database_url=database_url,
            host=_env("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3742),
            debug=_env_bool("DEBUG", False),
            log_format=_env("LOG_FORMAT", "dev"),
            sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 300.0),
            sweep_on_read=_env_bool("SWEEP_ON_READ", True),
            cors_origins=tuple(_env_list("CORS_ORIGINS", ["*"])),
        )

    def masked_database_url(self) -> str:
        return make_url(self.database_url).render_as_string(hide_password=True)


def get_settings() -> Settings:
    return Settings.from_env()
