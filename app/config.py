"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string; empty strings count as unset.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class AuthSettings:
    """
    Bearer-token verification settings for user sessions.

    Tokens are issued by the hosted auth provider and signed with a shared
    HMAC secret; the `sub` claim carries the user id.
    """

    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"


@dataclass(frozen=True)
class WebhookSettings:
    secret: str | None = None
    header_name: str = "x-webhook-secret"


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for calls to the scrape worker.
    """

    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class ScrapeWorkerSettings:
    """
    External scrape worker endpoints and polling bounds.
    """

    base_url: str | None = None
    trigger_path: str = "/api/scrape"
    status_path: str = "/status/{task_id}"
    poll_interval_seconds: float = 3.0
    max_poll_rounds: int = 200
    poll_concurrency: int = 8
    single_task_max_attempts: int = 30
    single_task_interval_seconds: float = 1.0
    proxy_api_key: str | None = None


@dataclass(frozen=True)
class RateUploadSettings:
    """
    Runtime settings for CSV reconciliation and upload history.
    """

    default_currency: str = "THB"
    storage_dir: str = "data/rate-csvs"
    history_limit: int = 10
    retention_days: int = 90
    atomic_replace: bool = True
    insert_batch_size: int = 1000
    max_upload_bytes: int = 5 * 1024 * 1024
    backfill_days_ahead: int = 60


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    return AuthSettings(
        jwt_secret=_get_optional_str_env("AUTH_JWT_SECRET"),
        jwt_algorithm=_get_str_env("AUTH_JWT_ALGORITHM", "HS256"),
        jwt_audience=_get_str_env("AUTH_JWT_AUDIENCE", "authenticated"),
    )


@lru_cache(maxsize=1)
def get_webhook_settings() -> WebhookSettings:
    return WebhookSettings(
        secret=_get_optional_str_env("SCRAPER_WEBHOOK_SECRET"),
        header_name=_get_str_env("SCRAPER_WEBHOOK_HEADER", "x-webhook-secret").lower(),
    )


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared worker HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
    )


@lru_cache(maxsize=1)
def get_scrape_worker_settings() -> ScrapeWorkerSettings:
    return ScrapeWorkerSettings(
        base_url=_get_optional_str_env("SCRAPE_WORKER_URL"),
        trigger_path=_get_str_env("SCRAPE_WORKER_TRIGGER_PATH", "/api/scrape"),
        status_path=_get_str_env("SCRAPE_WORKER_STATUS_PATH", "/status/{task_id}"),
        poll_interval_seconds=max(0.0, _get_float_env("SCRAPE_POLL_INTERVAL_SECONDS", 3.0)),
        max_poll_rounds=max(1, _get_int_env("SCRAPE_MAX_POLL_ROUNDS", 200)),
        poll_concurrency=max(1, _get_int_env("SCRAPE_POLL_CONCURRENCY", 8)),
        single_task_max_attempts=max(1, _get_int_env("SCRAPE_SINGLE_TASK_MAX_ATTEMPTS", 30)),
        single_task_interval_seconds=max(0.0, _get_float_env("SCRAPE_SINGLE_TASK_INTERVAL_SECONDS", 1.0)),
        proxy_api_key=_get_optional_str_env("SCRAPER_PROXY_API_KEY"),
    )


@lru_cache(maxsize=1)
def get_rate_upload_settings() -> RateUploadSettings:
    """
    Return cached CSV reconciliation settings from environment variables.
    """

    return RateUploadSettings(
        default_currency=_get_str_env("RATE_DEFAULT_CURRENCY", "THB").upper()[:3],
        storage_dir=_get_str_env("RATE_CSV_STORAGE_DIR", "data/rate-csvs"),
        history_limit=max(1, _get_int_env("RATE_UPLOAD_HISTORY_LIMIT", 10)),
        retention_days=max(1, _get_int_env("RATE_UPLOAD_RETENTION_DAYS", 90)),
        atomic_replace=_get_bool_env("RATE_REPLACE_ATOMIC", True),
        insert_batch_size=max(1, _get_int_env("RATE_INSERT_BATCH_SIZE", 1000)),
        max_upload_bytes=max(1024, _get_int_env("RATE_MAX_UPLOAD_BYTES", 5 * 1024 * 1024)),
        backfill_days_ahead=max(1, _get_int_env("RATE_BACKFILL_DAYS_AHEAD", 60)),
    )
