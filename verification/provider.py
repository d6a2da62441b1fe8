from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
import re
import time
from typing import Any
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode

from verification.payloads import classify_status, first_record, snapshot_id_from_trigger, unwrap_record

logger = logging.getLogger(__name__)

DATASET_ENV = {
    "tiktok": "BRIGHT_DATA_TIKTOK_PROFILE_SCRAPER_ID",
    "instagram": "BRIGHT_DATA_INSTAGRAM_PROFILE_SCRAPER_ID",
    "youtube": "BRIGHT_DATA_YOUTUBE_PROFILE_SCRAPER_ID",
}


@dataclass(frozen=True)
class ExternalProviderError(Exception):
    code: str
    message: str
    misconfigured: bool = False
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}(scraper): {self.message}"


@dataclass(frozen=True)
class ProviderConfig:
    api_key: str
    base_url: str
    dataset_ids: dict[str, str]
    webhook_url: str
    timeout_s: int
    retries: int

    def dataset_for(self, platform: str) -> str:
        dataset_id = self.dataset_ids.get(platform, "")
        if not dataset_id:
            raise ExternalProviderError(
                code="dataset_missing",
                message=f"Profile scraper not configured for {platform} (env: {DATASET_ENV.get(platform, '?')})",
                misconfigured=True,
            )
        return dataset_id


def load_provider_config() -> ProviderConfig:
    api_key = (os.getenv("BRIGHT_DATA_API_KEY") or os.getenv("BRIGHTDATA_API_KEY") or "").strip()
    if not api_key:
        raise ExternalProviderError(
            code="api_key_missing",
            message="Missing scraper API key (env: BRIGHT_DATA_API_KEY)",
            misconfigured=True,
        )
    base_url = os.getenv("BRIGHT_DATA_BASE_URL", "https://api.brightdata.com").strip().rstrip("/")
    dataset_ids = {platform: os.getenv(env, "").strip() for platform, env in DATASET_ENV.items()}
    app_base = os.getenv("APP_BASE_URL", "http://localhost:8000").strip().rstrip("/")
    return ProviderConfig(
        api_key=api_key,
        base_url=base_url,
        dataset_ids=dataset_ids,
        webhook_url=f"{app_base}/webhooks/profile",
        timeout_s=int(os.getenv("BRIGHT_DATA_TIMEOUT_S", "30")),
        retries=int(os.getenv("BRIGHT_DATA_RETRIES", "1")),
    )


def scrape_target_url(platform: str, profile_url: str) -> str:
    if platform == "youtube" and "/about" not in profile_url:
        return f"{profile_url.rstrip('/')}/about"
    return profile_url


@dataclass(frozen=True)
class JobStatus:
    state: str  # ready | failed | pending | not_found
    raw_status: str | None = None
    record: dict | None = field(default=None, compare=False)


class ScraperClient:
    """Thin client for the profile scraping provider's dataset API."""

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self.config = config or load_provider_config()

    def trigger(self, platform: str, profile_url: str) -> str:
        dataset_id = self.config.dataset_for(platform)
        query = urlencode(
            {
                "dataset_id": dataset_id,
                "format": "json",
                "uncompressed_webhook": "true",
                "webhook_url": self.config.webhook_url,
                "include_errors": "true",
            }
        )
        target = scrape_target_url(platform, profile_url)
        response = self._call_with_retries(
            "POST",
            f"/datasets/v3/trigger?{query}",
            body=[{"url": target}],
        )
        snapshot_id = snapshot_id_from_trigger(response)
        if not snapshot_id:
            raise ExternalProviderError(
                code="snapshot_id_missing",
                message="Trigger response carried no job id",
            )
        logger.info("[scraper] triggered platform=%s snapshot_id=%s", platform, snapshot_id)
        return snapshot_id

    def get_status(self, snapshot_id: str) -> JobStatus:
        try:
            doc = self._request("GET", f"/datasets/v3/snapshot/{quote(snapshot_id, safe='')}")
        except ExternalProviderError as exc:
            if exc.code == "http_404":
                return JobStatus(state="not_found")
            if exc.code.startswith("http_"):
                # non-OK status responses mean the snapshot is not served yet
                return JobStatus(state="pending", raw_status=exc.code)
            raise
        item = first_record(doc)
        raw = None
        if isinstance(item, dict):
            raw = item.get("status") or item.get("state")
        raw = str(raw).lower() if raw else None
        record, _ = unwrap_record(doc)
        state = classify_status(raw)
        if record is not None and raw is None:
            state = "ready"
        return JobStatus(state=state, raw_status=raw, record=record)

    def fetch_result(self, snapshot_id: str) -> Any:
        return self._request("GET", f"/datasets/v3/snapshot/{quote(snapshot_id, safe='')}/data?format=json")

    def _call_with_retries(self, method: str, path: str, body: Any = None) -> Any:
        last_error: ExternalProviderError | None = None
        for attempt in range(self.config.retries + 1):
            try:
                return self._request(method, path, body)
            except ExternalProviderError as exc:
                last_error = exc
                if not exc.retryable or attempt >= self.config.retries:
                    break
                time.sleep(min(2**attempt, 3))
        assert last_error is not None
        raise last_error

    def _request(self, method: str, path: str, body: Any = None) -> Any:
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        data = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body).encode("utf-8")
        req = urlrequest.Request(
            url=f"{self.config.base_url}{path}",
            data=data,
            method=method,
            headers=headers,
        )
        try:
            with urlrequest.urlopen(req, timeout=max(5, self.config.timeout_s)) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace") if exc.fp is not None else ""
            raise ExternalProviderError(
                code=f"http_{exc.code}",
                message=_sanitize(detail),
                retryable=exc.code >= 500 or exc.code == 429,
            ) from exc
        except URLError as exc:
            raise ExternalProviderError(
                code="network_error",
                message=_sanitize(str(exc)),
                retryable=True,
            ) from exc
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # the data endpoint may answer with newline-delimited json
            lines = [line for line in raw.splitlines() if line.strip()]
            try:
                return [json.loads(line) for line in lines]
            except json.JSONDecodeError as exc:
                raise ExternalProviderError(code="invalid_response", message=_sanitize(raw)) from exc


def _sanitize(message: str) -> str:
    text = (message or "").replace("\n", " ")
    text = re.sub(r"Bearer\s+\S+", "Bearer [redacted]", text)
    return text[:300]
