"""Structural probes over the scraping provider's loosely shaped documents.

The provider returns a job id, a job status and profile records in several
shapes depending on endpoint and delivery path. Each lookup here walks an
ordered list of dotted paths and takes the first non-empty scalar.
"""

from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any, Iterable

TRIGGER_ID_PATHS = ("snapshot_id", "id", "collection_id")

WEBHOOK_ID_HEADERS = ("x-snapshot-id", "snapshot-id", "x-brightdata-snapshot-id")
WEBHOOK_ID_PATHS = (
    "snapshot_id",
    "id",
    "snapshotId",
    "snapshot",
    "collection_id",
    "input.snapshot_id",
    "input.id",
    "metadata.snapshot_id",
    "_snapshot_id",
)
WRAPPER_KEYS = ("data", "result", "results")

# markers that a bare object is a profile record rather than a notification
_PROFILE_MARKERS = (
    "url",
    "handle",
    "Description",
    "description",
    "name",
    "biography",
    "account",
    "nickname",
    "followers",
)

BIO_PATHS = {
    "tiktok": ("biography", "signature", "bio", "bio_text", "description"),
    "instagram": ("biography", "account.biography", "account.bio", "bio", "bio_text", "description"),
    "youtube": ("Description", "description", "about", "about_text", "bio", "bio_text"),
}
GENERIC_BIO_PATHS = (
    "biography",
    "bio",
    "Description",
    "description",
    "bio_text",
    "description_text",
    "about",
    "about_text",
    "signature",
)

READY_STATES = {"ready", "completed", "complete", "done", "success", "succeeded"}
FAILED_STATES = {"failed", "error", "errored", "cancelled", "canceled"}


def _dig(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def probe(doc: Any, paths: Iterable[str]) -> str | None:
    """First non-empty string/int found at any of ``paths``."""
    for path in paths:
        value = _dig(doc, path)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def first_record(doc: Any) -> Any:
    if isinstance(doc, list):
        return doc[0] if doc else None
    return doc


def snapshot_id_from_trigger(doc: Any) -> str | None:
    return probe(first_record(doc), TRIGGER_ID_PATHS)


def unwrap_record(doc: Any) -> tuple[dict | None, str | None]:
    """Return ``(profile_record, status)`` from a result or webhook document.

    Wrapper objects carrying ``data``/``result``/``results`` are opened and their
    first record taken. A bare object counts as a record only when it looks like
    a profile; otherwise it is treated as a status notification.
    """
    item = first_record(doc)
    if not isinstance(item, Mapping):
        return None, None
    for key in WRAPPER_KEYS:
        inner = item.get(key)
        if inner:
            record = first_record(inner)
            status = probe(item, ("status", "state")) or "completed"
            return (dict(record) if isinstance(record, Mapping) else None), status.lower()
    if isinstance(doc, list) or any(item.get(marker) not in (None, "") for marker in _PROFILE_MARKERS):
        return dict(item), "completed"
    status = probe(item, ("status", "state"))
    return None, status.lower() if status else None


def snapshot_id_from_webhook(headers: Mapping[str, str] | None, doc: Any) -> str | None:
    if headers:
        lowered = {str(k).lower(): v for k, v in headers.items()}
        for name in WEBHOOK_ID_HEADERS:
            value = lowered.get(name)
            if value and str(value).strip():
                return str(value).strip()
    item = first_record(doc)
    found = probe(item, WEBHOOK_ID_PATHS)
    if found:
        return found
    record, _ = unwrap_record(doc)
    if record is not None:
        return probe(record, ("input.snapshot_id", "input.id"))
    return None


def profile_url_from_record(record: Mapping | None) -> str | None:
    if not record:
        return None
    return probe(record, ("url", "profile_url", "account_url"))


def extract_bio(profile_data: Any, platform: str) -> str:
    if not isinstance(profile_data, Mapping):
        return ""
    paths = BIO_PATHS.get(platform, GENERIC_BIO_PATHS)
    for path in paths:
        value = _dig(profile_data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def code_in_bio(bio: str, code: str) -> bool:
    if not bio or not code:
        return False
    normalized = re.sub(r"\s+", " ", bio).strip().lower()
    return code.strip().lower() in normalized


def classify_status(raw: str | None) -> str:
    """Map a provider job state onto ``ready`` / ``failed`` / ``pending``."""
    value = (raw or "").strip().lower()
    if value in READY_STATES:
        return "ready"
    if value in FAILED_STATES:
        return "failed"
    return "pending"
