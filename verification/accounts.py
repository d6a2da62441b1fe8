from __future__ import annotations

import logging
import re
import secrets
import string
from uuid import UUID
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import AuditEvent, SocialAccount
from ownership.matching import normalize_handle
from ownership.resolver import OwnershipResolver

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


class AccountNotFound(LookupError):
    pass


class AlreadyVerified(RuntimeError):
    pass


class AccountAlreadyLinked(RuntimeError):
    """The caller already linked this profile."""


class AccountOwnedElsewhere(RuntimeError):
    """Another user linked this profile, or already verified the handle."""


def generate_verification_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def unique_verification_code(session: Session, attempts: int = 10) -> str:
    for _ in range(attempts):
        code = generate_verification_code()
        taken = session.execute(
            select(SocialAccount.id).where(SocialAccount.verification_code == code).limit(1)
        ).first()
        if taken is None:
            return code
    raise RuntimeError("Could not allocate a unique verification code")


def _with_scheme(url: str) -> str:
    value = (url or "").strip()
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    return value


def normalize_profile_url(url: str) -> str:
    """https scheme, no query, no fragment, no trailing slash."""
    parts = urlsplit(_with_scheme(url))
    path = re.sub(r"/+$", "", parts.path or "")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def extract_username_from_url(url: str, platform: str) -> str | None:
    path = urlsplit(_with_scheme(url)).path or ""
    if platform == "tiktok":
        match = re.match(r"^/@([^/]+)", path)
        return match.group(1) if match else None
    if platform == "instagram":
        match = re.match(r"^/([^/]+)", path)
        if match and match.group(1) not in {"p", "reel", "reels", "stories", "explore", "accounts"}:
            return match.group(1)
        return None
    if platform == "youtube":
        for pattern in (r"^/@([^/]+)", r"^/c/([^/]+)", r"^/user/([^/]+)"):
            match = re.match(pattern, path)
            if match:
                return match.group(1)
        return None
    return None


def validate_profile_url(url: str, platform: str) -> bool:
    parts = urlsplit(_with_scheme(url))
    host = parts.netloc.lower()
    path = parts.path or ""
    if platform == "tiktok":
        return "tiktok.com" in host and (path.startswith("/@") or host == "vm.tiktok.com")
    if platform == "instagram":
        if "instagram.com" not in host:
            return False
        return extract_username_from_url(url, "instagram") is not None
    if platform == "youtube":
        if "youtube.com" not in host:
            return False
        path = re.sub(r"/about$", "", path)
        return path.startswith(("/@", "/c/", "/channel/", "/user/"))
    return False


def parse_profile_url(url: str) -> tuple[str | None, str | None]:
    """Return ``(platform, username)``; both None when the host is not supported."""
    host = urlsplit(_with_scheme(url)).netloc.lower()
    if "tiktok.com" in host:
        platform = "tiktok"
    elif "instagram.com" in host:
        platform = "instagram"
    elif "youtube.com" in host or "youtu.be" in host:
        platform = "youtube"
    else:
        return None, None
    return platform, extract_username_from_url(url, platform)


def _check_duplicates(session: Session, user_id: UUID, platform: str, profile_url: str, handle: str | None) -> None:
    existing = session.execute(
        select(SocialAccount).where(
            SocialAccount.platform == platform,
            SocialAccount.profile_url == profile_url,
        )
    ).scalar_one_or_none()
    if existing is not None:
        if existing.user_id == user_id:
            raise AccountAlreadyLinked("This account is already connected")
        raise AccountOwnedElsewhere("This account is already connected to another user")

    if handle:
        taken = session.execute(
            select(SocialAccount.id)
            .where(
                SocialAccount.platform == platform,
                func.lower(SocialAccount.username) == handle,
                SocialAccount.verification_status == "VERIFIED",
                SocialAccount.user_id != user_id,
            )
            .limit(1)
        ).first()
        if taken is not None:
            raise AccountOwnedElsewhere("This handle is already verified by another user")


def link_account(
    session: Session,
    *,
    user_id: UUID,
    platform: str,
    profile_url: str,
    username: str | None = None,
) -> SocialAccount:
    normalized = normalize_profile_url(profile_url)
    if not validate_profile_url(normalized, platform):
        raise ValueError(f"invalid {platform} profile url")
    username = (username or "").strip().lstrip("@") or extract_username_from_url(normalized, platform)
    handle = normalize_handle(username)

    _check_duplicates(session, user_id, platform, normalized, handle)

    account = SocialAccount(
        user_id=user_id,
        platform=platform,
        profile_url=normalized,
        username=username,
        verification_code=unique_verification_code(session),
        verification_status="UNVERIFIED",
        verification_attempts=0,
    )
    session.add(account)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        _check_duplicates(session, user_id, platform, normalized, handle)
        raise

    OwnershipResolver(session).associate_account_with_pending_assets(account)
    session.add(
        AuditEvent(
            event_type="social_account_linked",
            source="ui",
            actor_user_id=user_id,
            payload={"account_id": str(account.id), "platform": platform, "profile_url": normalized},
        )
    )
    session.commit()
    logger.info("[accounts] linked account_id=%s platform=%s user_id=%s", account.id, platform, user_id)
    return account
