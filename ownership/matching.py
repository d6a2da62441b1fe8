from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import SocialAccount
from ownership.fingerprint import extract_video_identifiers, normalize_video_url


def normalize_handle(value: str | None) -> str | None:
    if not value:
        return None
    handle = value.replace("@", "", 1).strip().lower()
    return handle or None


def account_matches_url(
    account: SocialAccount,
    video_url: str,
    platform: str,
    username_hint: str | None = None,
) -> bool:
    """Structural match between a linked account and a video URL.

    Handle equivalence first, then the video living under the profile path,
    then the account handle as a whole path segment. Comparisons are exact so
    ``creator_x`` never matches ``creator_xyz``.
    """
    if account.platform != platform or not video_url:
        return False
    handle = normalize_handle(account.username)
    hint = normalize_handle(username_hint)
    if hint is None:
        extracted, _ = extract_video_identifiers(platform, video_url)
        hint = normalize_handle(extracted)

    if handle and hint and handle == hint:
        return True
    if account.profile_url and video_under_profile(account.profile_url, video_url):
        return True

    if handle:
        _, segments = _host_and_segments(video_url)
        return handle in segments or f"@{handle}" in segments
    return False


def _host_and_segments(url: str) -> tuple[str, list[str]]:
    parts = urlsplit(normalize_video_url(url))
    return parts.netloc, [segment.lower() for segment in parts.path.split("/") if segment]


def video_under_profile(profile_url: str, video_url: str) -> bool:
    """True when the video path equals the profile path or continues below it."""
    profile_host, profile_segments = _host_and_segments(profile_url)
    video_host, video_segments = _host_and_segments(video_url)
    if not profile_segments or profile_host != video_host:
        return False
    return video_segments[: len(profile_segments)] == profile_segments


@dataclass(frozen=True)
class AccountResolution:
    status: str  # verified | needs_verification | missing
    account: SocialAccount | None


def resolve_account_ownership(
    session: Session,
    *,
    user_id: UUID,
    platform: str,
    video_url: str,
    require_verified: bool = True,
) -> AccountResolution:
    accounts = (
        session.execute(
            select(SocialAccount)
            .where(SocialAccount.user_id == user_id, SocialAccount.platform == platform)
            .order_by(SocialAccount.created_at)
        )
        .scalars()
        .all()
    )
    if not accounts:
        return AccountResolution("missing", None)

    eligible = [a for a in accounts if a.verification_status == "VERIFIED"] if require_verified else list(accounts)
    if not eligible:
        return AccountResolution("needs_verification", None)

    username, _ = extract_video_identifiers(platform, video_url)
    matched = next((a for a in eligible if account_matches_url(a, video_url, platform, username)), None)
    if matched is None:
        return AccountResolution("missing" if require_verified else "needs_verification", None)
    if matched.verification_status == "VERIFIED":
        return AccountResolution("verified", matched)
    return AccountResolution("needs_verification", matched)
