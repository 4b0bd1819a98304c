"""
app/connectors/scrape_worker.py

HTTP client for the external scrape worker.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import requests

from app.config import ExternalHTTPSettings, ScrapeWorkerSettings
from app.errors import WorkerError

logger = logging.getLogger(__name__)

_MAX_ERROR_DETAIL_CHARS = 500


def normalize_worker_url(base_url: str, default_path: str) -> str:
    """
    Default the scheme to https and append ``default_path`` when the URL has
    no path of its own.
    """

    value = base_url.strip()
    if "://" not in value:
        value = f"https://{value}"
    parts = urlsplit(value)
    if parts.path in ("", "/"):
        return value.rstrip("/") + "/" + default_path.lstrip("/")
    return value


class ScrapeWorkerClient:
    """
    Triggers scrape batches and reads task status from the worker.

    Every call is a single request. Any transport failure or non-2xx answer
    raises WorkerError; the tracker polls again on its next round and a
    failed trigger is reported to the caller.
    """

    def __init__(
        self,
        *,
        worker_settings: ScrapeWorkerSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not worker_settings.base_url:
            raise WorkerError("SCRAPE_WORKER_URL is not configured.")
        self._trigger_url = normalize_worker_url(worker_settings.base_url, worker_settings.trigger_path)
        parts = urlsplit(self._trigger_url)
        self._origin = f"{parts.scheme}://{parts.netloc}"
        self._status_path = worker_settings.status_path
        self._proxy_api_key = worker_settings.proxy_api_key
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds

    def trigger_scrape(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST a scrape request and return the worker's JSON response.
        """

        try:
            response = self._session.request(
                method="POST",
                url=self._trigger_url,
                json=payload,
                headers=self._headers(),
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.error("Scrape worker unreachable url=%s error=%s", self._trigger_url, exc)
            raise WorkerError(f"Scrape worker unreachable: {exc}") from exc
        if not response.ok:
            logger.error("Scrape worker request failed status=%s url=%s", response.status_code, self._trigger_url)
            raise WorkerError(
                f"Scrape worker responded with HTTP {response.status_code}.",
                status_code=response.status_code,
                details=response.text[:_MAX_ERROR_DETAIL_CHARS],
            )
        return self._parse_json(response)

    def get_task_status(self, task_id: str) -> dict[str, Any]:
        url = self._origin + self._status_path.format(task_id=task_id)
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise WorkerError(f"Scrape worker unreachable: {exc}") from exc
        if not response.ok:
            raise WorkerError(
                f"Status request for task {task_id} failed with HTTP {response.status_code}.",
                status_code=response.status_code,
                details=response.text[:_MAX_ERROR_DETAIL_CHARS],
            )
        return self._parse_json(response)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._proxy_api_key:
            headers["X-Scraper-Api-Key"] = self._proxy_api_key
        return headers

    @staticmethod
    def _parse_json(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise WorkerError("Scrape worker response was not valid JSON.", status_code=response.status_code) from exc
        if not isinstance(body, dict):
            raise WorkerError("Scrape worker response must be a JSON object.", status_code=response.status_code)
        return body
