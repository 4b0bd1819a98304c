"""
db/config.py

Rate store connection settings.

The URL comes from ``DATABASE_URL``; deployments that keep separate cloud and
local databases can instead set ``CLOUD_DATABASE_URL`` (picked when
``ENVIRONMENT`` is prod/staging/cloud) and ``LOCAL_DATABASE_URL``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = (".env", ".env.local")
CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
APPLICATION_NAME = "rate-reconciler"


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 1800
    connect_timeout_seconds: int = 10


def load_env_files(root: Path = PROJECT_ROOT) -> None:
    """
    Copy KEY=VALUE lines from the project's env files into ``os.environ``.

    Variables already set in the process are left alone, so the real
    environment always wins over the files.
    """

    for filename in ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for line in env_path.read_text(encoding="utf-8").splitlines():
            key, sep, value = line.strip().partition("=")
            key = key.strip()
            if not sep or not key or key.startswith("#"):
                continue
            os.environ.setdefault(key, value.strip().strip("\"'"))


def normalize_postgres_url(url: str) -> str:
    """
    Force the psycopg 3 driver onto bare postgres URLs.
    """

    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return "postgresql+psycopg://" + url[len(scheme):]
    return url


def resolve_database_url() -> str:
    load_env_files()

    candidates = [os.getenv("DATABASE_URL")]
    if os.getenv("ENVIRONMENT", "local").strip().lower() in CLOUD_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))

    for candidate in candidates:
        if candidate and candidate.strip():
            return normalize_postgres_url(candidate.strip())

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def get_database_settings() -> DatabaseSettings:
    """
    Build connection settings; raises RuntimeError when no URL is configured.
    """

    url = resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")
    return DatabaseSettings(
        url=url,
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_size=max(1, _int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, _int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle_seconds=_int_env("DB_POOL_RECYCLE", 1800),
        connect_timeout_seconds=max(1, _int_env("DB_CONNECT_TIMEOUT_SECONDS", 10)),
    )
