from __future__ import annotations

from verification.payloads import (
    classify_status,
    code_in_bio,
    extract_bio,
    profile_url_from_record,
    snapshot_id_from_trigger,
    snapshot_id_from_webhook,
    unwrap_record,
)


def test_snapshot_id_from_trigger_probes_known_shapes() -> None:
    assert snapshot_id_from_trigger({"snapshot_id": "s_1"}) == "s_1"
    assert snapshot_id_from_trigger([{"id": "s_2"}]) == "s_2"
    assert snapshot_id_from_trigger({"collection_id": 42}) == "42"
    assert snapshot_id_from_trigger({"snapshot_id": "  "}) is None
    assert snapshot_id_from_trigger({}) is None
    assert snapshot_id_from_trigger(None) is None


def test_unwrap_record_opens_wrappers() -> None:
    record, status = unwrap_record({"status": "ready", "data": [{"biography": "hello"}]})
    assert record == {"biography": "hello"}
    assert status == "ready"


def test_unwrap_record_accepts_bare_profile_list() -> None:
    record, status = unwrap_record([{"url": "https://www.tiktok.com/@creator_x", "biography": "bio"}])
    assert record["biography"] == "bio"
    assert status == "completed"


def test_unwrap_record_treats_bare_status_object_as_notification() -> None:
    assert unwrap_record({"snapshot_id": "s_1", "status": "FAILED"}) == (None, "failed")
    assert unwrap_record({"snapshot_id": "s_1"}) == (None, None)
    assert unwrap_record("nonsense") == (None, None)


def test_snapshot_id_from_webhook_prefers_headers() -> None:
    assert snapshot_id_from_webhook({"X-Snapshot-Id": "s_header"}, {"snapshot_id": "s_body"}) == "s_header"


def test_snapshot_id_from_webhook_falls_back_to_body_paths() -> None:
    assert snapshot_id_from_webhook({}, {"snapshotId": "s_camel"}) == "s_camel"
    assert snapshot_id_from_webhook(None, [{"input": {"snapshot_id": "s_in"}, "url": "u"}]) == "s_in"
    assert snapshot_id_from_webhook({}, {"status": "ready"}) is None


def test_extract_bio_per_platform() -> None:
    assert extract_bio({"signature": "tt bio"}, "tiktok") == "tt bio"
    assert extract_bio({"account": {"biography": "ig bio"}}, "instagram") == "ig bio"
    assert extract_bio({"Description": "yt about"}, "youtube") == "yt about"
    assert extract_bio({"followers": 10}, "tiktok") == ""
    assert extract_bio(None, "tiktok") == ""


def test_code_in_bio_is_case_and_whitespace_tolerant() -> None:
    assert code_in_bio("Welcome! Code ABC123 here", "ABC123")
    assert code_in_bio("welcome!\n\ncode   abc123", "ABC123")
    assert not code_in_bio("no code here", "ABC123")
    assert not code_in_bio("", "ABC123")
    assert not code_in_bio("ABC123", "")


def test_classify_status() -> None:
    assert classify_status("Ready") == "ready"
    assert classify_status("done") == "ready"
    assert classify_status("failed") == "failed"
    assert classify_status("running") == "pending"
    assert classify_status(None) == "pending"


def test_profile_url_from_record() -> None:
    assert profile_url_from_record({"profile_url": "https://instagram.com/x"}) == "https://instagram.com/x"
    assert profile_url_from_record(None) is None
