"""Canonical content identity for externally hosted short-form videos.

Two URLs that point at the same video on the same platform produce the same
fingerprint key, regardless of share/tracking parameters, host aliases,
fragments or trailing slashes.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

PLATFORMS = ("tiktok", "instagram", "youtube")

_TRACKING_PARAMS = {
    "si",
    "feature",
    "igsh",
    "igshid",
    "is_from_webapp",
    "is_copy_url",
    "sender_device",
    "sender_web_id",
    "web_id",
    "_r",
    "_t",
    "ref",
    "fbclid",
    "gclid",
    "pp",
}
_TRACKING_PREFIXES = ("utm_", "share_")

_HOST_PREFIXES = ("www.", "m.", "vm.", "vt.")

_TIKTOK_PATTERNS = (
    re.compile(r"^/@[^/]+/video/(\d+)"),
    re.compile(r"^/video/(\d+)"),
    re.compile(r"^/v/(\d+)(?:\.html)?"),
)
_INSTAGRAM_PATTERN = re.compile(r"^(?:/[^/]+)?/(?:p|reels?|tv)/([A-Za-z0-9_-]+)")
_YOUTUBE_PATH_PATTERN = re.compile(r"^/(?:shorts|embed|live)/([A-Za-z0-9_-]+)")
_YOUTUBE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class Fingerprint:
    key: str
    platform: str
    content_id: str | None
    confidence: str

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence == "high"


def _is_tracking(name: str) -> bool:
    lowered = name.lower()
    return lowered in _TRACKING_PARAMS or lowered.startswith(_TRACKING_PREFIXES)


def _ensure_scheme(url: str) -> str:
    value = (url or "").strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", value):
        value = f"https://{value}"
    return value


def _bare_host(netloc: str) -> str:
    host = netloc.lower().split("@")[-1].split(":")[0]
    for prefix in _HOST_PREFIXES:
        if host.startswith(prefix):
            return host[len(prefix):]
    return host


def normalize_video_url(url: str) -> str:
    """Lowercase scheme/host, drop host aliases, tracking params, fragment and trailing slash.

    Path and remaining query values keep their case; content ids are case sensitive.
    """
    parts = urlsplit(_ensure_scheme(url))
    scheme = (parts.scheme or "https").lower()
    if scheme == "http":
        scheme = "https"
    host = _bare_host(parts.netloc)
    path = re.sub(r"/{2,}", "/", parts.path or "").rstrip("/")
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=False)
        if not _is_tracking(k)
    ]
    query.sort()
    return urlunsplit((scheme, host, path, urlencode(query), ""))


def detect_platform(url: str) -> str | None:
    host = _bare_host(urlsplit(_ensure_scheme(url)).netloc)
    if host.endswith("tiktok.com"):
        return "tiktok"
    if host.endswith("instagram.com") or host == "instagr.am":
        return "instagram"
    if host.endswith("youtube.com") or host == "youtu.be":
        return "youtube"
    return None


def _extract_content_id(platform: str, normalized: str) -> str | None:
    parts = urlsplit(normalized)
    path = parts.path or "/"
    if platform == "tiktok":
        for pattern in _TIKTOK_PATTERNS:
            match = pattern.match(path)
            if match:
                return match.group(1)
        return None
    if platform == "instagram":
        match = _INSTAGRAM_PATTERN.match(path)
        return match.group(1) if match else None
    if platform == "youtube":
        if parts.netloc == "youtu.be":
            candidate = path.strip("/").split("/")[0]
            return candidate if candidate and _YOUTUBE_ID.match(candidate) else None
        match = _YOUTUBE_PATH_PATTERN.match(path)
        if match:
            return match.group(1)
        if path == "/watch":
            for key, value in parse_qsl(parts.query):
                if key == "v" and _YOUTUBE_ID.match(value):
                    return value
        return None
    return None


def fingerprint(platform: str, url: str) -> Fingerprint:
    platform = (platform or "").strip().lower()
    if platform not in PLATFORMS:
        raise ValueError(f"unsupported platform: {platform!r}")
    normalized = normalize_video_url(url)
    content_id = _extract_content_id(platform, normalized)
    if content_id:
        return Fingerprint(
            key=f"{platform}:{content_id}",
            platform=platform,
            content_id=content_id,
            confidence="high",
        )
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return Fingerprint(
        key=f"{platform}:url:{digest}",
        platform=platform,
        content_id=None,
        confidence="low",
    )


def extract_video_identifiers(platform: str, url: str) -> tuple[str | None, str | None]:
    """Return ``(username, video_id)`` where the URL shape carries them."""
    platform = (platform or "").strip().lower()
    normalized = normalize_video_url(url)
    path = urlsplit(normalized).path
    username: str | None = None
    if platform == "tiktok":
        match = re.match(r"^/@([^/]+)", path)
        username = match.group(1) if match else None
    elif platform == "instagram":
        match = re.match(r"^/([^/]+)/(?:p|reels?|tv)/", path)
        username = match.group(1) if match else None
    elif platform == "youtube":
        match = re.match(r"^/@([^/]+)", path)
        username = match.group(1) if match else None
    video_id = _extract_content_id(platform, normalized) if platform in PLATFORMS else None
    return username, video_id
