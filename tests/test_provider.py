from __future__ import annotations

from dataclasses import replace
import json
from urllib.error import HTTPError, URLError

import pytest

import verification.provider as provider
from verification.provider import ExternalProviderError, ScraperClient, load_provider_config


class _FakeResponse:
    def __init__(self, body: str) -> None:
        self._body = body.encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> bool:
        return False


def _install(monkeypatch, responses: list) -> list:
    calls: list = []

    def fake_urlopen(req, timeout=None):
        calls.append(req)
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return _FakeResponse(item)

    monkeypatch.setattr(provider.urlrequest, "urlopen", fake_urlopen)
    monkeypatch.setattr(provider.time, "sleep", lambda _seconds: None)
    return calls


def _http_error(code: int) -> HTTPError:
    return HTTPError("https://scraper.test", code, "error", {}, None)


def test_trigger_posts_profile_url_and_returns_snapshot_id(monkeypatch, provider_config_factory) -> None:
    calls = _install(monkeypatch, [json.dumps({"snapshot_id": "s_123"})])
    client = ScraperClient(provider_config_factory())

    assert client.trigger("tiktok", "https://www.tiktok.com/@creator_x") == "s_123"

    req = calls[0]
    assert req.get_method() == "POST"
    assert req.full_url.startswith("https://scraper.test/datasets/v3/trigger?")
    assert "dataset_id=gd_tiktok" in req.full_url
    assert "include_errors=true" in req.full_url
    assert req.get_header("Authorization") == "Bearer test-key"
    assert json.loads(req.data) == [{"url": "https://www.tiktok.com/@creator_x"}]


def test_trigger_targets_youtube_about_page(monkeypatch, provider_config_factory) -> None:
    calls = _install(monkeypatch, [json.dumps([{"id": "s_yt"}])])
    client = ScraperClient(provider_config_factory())

    assert client.trigger("youtube", "https://www.youtube.com/@creator_x") == "s_yt"
    assert json.loads(calls[0].data) == [{"url": "https://www.youtube.com/@creator_x/about"}]


def test_trigger_without_job_id_raises(monkeypatch, provider_config_factory) -> None:
    _install(monkeypatch, [json.dumps({"message": "queued"})])
    client = ScraperClient(provider_config_factory())

    with pytest.raises(ExternalProviderError) as exc_info:
        client.trigger("tiktok", "https://www.tiktok.com/@creator_x")
    assert exc_info.value.code == "snapshot_id_missing"


def test_trigger_retries_retryable_errors(monkeypatch, provider_config_factory) -> None:
    config = replace(provider_config_factory(), retries=1)
    calls = _install(monkeypatch, [_http_error(503), json.dumps({"snapshot_id": "s_retry"})])

    assert ScraperClient(config).trigger("tiktok", "https://www.tiktok.com/@creator_x") == "s_retry"
    assert len(calls) == 2


def test_trigger_does_not_retry_client_errors(monkeypatch, provider_config_factory) -> None:
    config = replace(provider_config_factory(), retries=2)
    calls = _install(monkeypatch, [_http_error(401)])

    with pytest.raises(ExternalProviderError) as exc_info:
        ScraperClient(config).trigger("tiktok", "https://www.tiktok.com/@creator_x")
    assert exc_info.value.code == "http_401"
    assert len(calls) == 1


def test_missing_dataset_is_misconfigured(provider_config_factory) -> None:
    client = ScraperClient(provider_config_factory(instagram=""))
    with pytest.raises(ExternalProviderError) as exc_info:
        client.trigger("instagram", "https://www.instagram.com/creator_x")
    assert exc_info.value.misconfigured


def test_load_provider_config_requires_api_key(monkeypatch) -> None:
    monkeypatch.delenv("BRIGHT_DATA_API_KEY", raising=False)
    monkeypatch.delenv("BRIGHTDATA_API_KEY", raising=False)
    with pytest.raises(ExternalProviderError) as exc_info:
        load_provider_config()
    assert exc_info.value.code == "api_key_missing"
    assert exc_info.value.misconfigured


def test_load_provider_config_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("BRIGHTDATA_API_KEY", "alt-key")
    monkeypatch.delenv("BRIGHT_DATA_API_KEY", raising=False)
    monkeypatch.setenv("BRIGHT_DATA_TIKTOK_PROFILE_SCRAPER_ID", "gd_tt")
    monkeypatch.setenv("APP_BASE_URL", "https://clips.example.com/")
    config = load_provider_config()
    assert config.api_key == "alt-key"
    assert config.dataset_for("tiktok") == "gd_tt"
    assert config.webhook_url == "https://clips.example.com/webhooks/profile"


def test_get_status_maps_provider_states(monkeypatch, provider_config_factory) -> None:
    calls = _install(
        monkeypatch,
        [
            json.dumps({"status": "running"}),
            json.dumps({"status": "ready"}),
            json.dumps({"status": "failed"}),
        ],
    )
    client = ScraperClient(provider_config_factory())

    assert client.get_status("s_1").state == "pending"
    assert client.get_status("s_1").state == "ready"
    assert client.get_status("s_1").state == "failed"
    assert calls[0].full_url == "https://scraper.test/datasets/v3/snapshot/s_1"


def test_get_status_treats_inline_records_as_ready(monkeypatch, provider_config_factory) -> None:
    _install(monkeypatch, [json.dumps([{"url": "https://www.tiktok.com/@x", "biography": "ABC123"}])])
    status = ScraperClient(provider_config_factory()).get_status("s_1")
    assert status.state == "ready"
    assert status.record["biography"] == "ABC123"


def test_get_status_http_errors(monkeypatch, provider_config_factory) -> None:
    _install(monkeypatch, [_http_error(404), _http_error(500), URLError("connection refused")])
    client = ScraperClient(provider_config_factory())

    assert client.get_status("s_1").state == "not_found"
    pending = client.get_status("s_1")
    assert pending.state == "pending"
    assert pending.raw_status == "http_500"
    with pytest.raises(ExternalProviderError) as exc_info:
        client.get_status("s_1")
    assert exc_info.value.code == "network_error"


def test_fetch_result_accepts_ndjson(monkeypatch, provider_config_factory) -> None:
    calls = _install(monkeypatch, ['{"biography": "a"}\n{"biography": "b"}\n'])
    result = ScraperClient(provider_config_factory()).fetch_result("s_1")
    assert result == [{"biography": "a"}, {"biography": "b"}]
    assert calls[0].full_url.endswith("/datasets/v3/snapshot/s_1/data?format=json")


def test_error_messages_are_sanitized() -> None:
    assert provider._sanitize("Bearer secret-token\nfailed") == "Bearer [redacted] failed"
    assert len(provider._sanitize("x" * 1000)) == 300
