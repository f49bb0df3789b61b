"""retro_fantasy.config

Environment-driven settings.  CLI flags override anything loaded here.

    DATABASE_URL            full libpq DSN/URL (wins over the DB_* parts)
    DB_HOST / DB_PORT / DB_USER / DB_PASSWORD / DB_NAME
    RETROSPLITS_BASE_URL    where playing-YYYY.csv files are downloaded from
    REGISTER_BASE_URL       where people-X.csv register files live
    RETRO_DATA_DIR          local cache directory for downloaded files
    STAGING_PAGE_SIZE       rows per staging transaction (default 1000)
    TRANSFORM_PAGE_SIZE     rows per transform transaction (default 500)
    HTTP_TIMEOUT_SECONDS    per-request timeout (default 60)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from retro_fantasy.fetch import DEFAULT_REGISTER_BASE_URL, DEFAULT_RETROSPLITS_BASE_URL
from retro_fantasy.staging import DEFAULT_STAGING_PAGE_SIZE
from retro_fantasy.transform import DEFAULT_TRANSFORM_PAGE_SIZE


class ConfigError(ValueError):
    """Raised when an environment setting is present but invalid."""


@dataclass(frozen=True)
class Settings:
    db_dsn: str
    retrosplits_base_url: str = DEFAULT_RETROSPLITS_BASE_URL
    register_base_url: str = DEFAULT_REGISTER_BASE_URL
    data_dir: Path = Path("./data")
    staging_page_size: int = DEFAULT_STAGING_PAGE_SIZE
    transform_page_size: int = DEFAULT_TRANSFORM_PAGE_SIZE
    http_timeout: float = 60.0


def _int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key}={raw!r} is not an integer") from None
    if value < minimum:
        raise ConfigError(f"{key}={value} must be >= {minimum}")
    return value


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key}={raw!r} is not a number") from None
    if value <= 0:
        raise ConfigError(f"{key}={value} must be > 0")
    return value


def build_dsn(env: Mapping[str, str]) -> str:
    """DATABASE_URL if set, otherwise a keyword DSN from the DB_* parts."""
    url = (env.get("DATABASE_URL") or "").strip()
    if url:
        return url
    port = _int(env, "DB_PORT", 5432)
    parts = [
        f"host={env.get('DB_HOST') or 'localhost'}",
        f"port={port}",
        f"user={env.get('DB_USER') or 'mlb'}",
        f"dbname={env.get('DB_NAME') or 'mlb_fantasy'}",
    ]
    password = env.get("DB_PASSWORD")
    if password:
        parts.append(f"password={password}")
    return " ".join(parts)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        db_dsn=build_dsn(env),
        retrosplits_base_url=env.get("RETROSPLITS_BASE_URL") or DEFAULT_RETROSPLITS_BASE_URL,
        register_base_url=env.get("REGISTER_BASE_URL") or DEFAULT_REGISTER_BASE_URL,
        data_dir=Path(env.get("RETRO_DATA_DIR") or "./data"),
        staging_page_size=_int(env, "STAGING_PAGE_SIZE", DEFAULT_STAGING_PAGE_SIZE),
        transform_page_size=_int(env, "TRANSFORM_PAGE_SIZE", DEFAULT_TRANSFORM_PAGE_SIZE),
        http_timeout=_float(env, "HTTP_TIMEOUT_SECONDS", 60.0),
    )
