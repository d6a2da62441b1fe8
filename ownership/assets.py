from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import AuditEvent, ContestSubmission, RawVideoAsset, SocialAccount
from ownership.claims import ClaimRegistry
from ownership.fingerprint import extract_video_identifiers, fingerprint
from ownership.matching import account_matches_url
from storage.objects import LocalObjectStore, build_object_path

logger = logging.getLogger(__name__)

ASSET_STATUSES = ("pending", "verified", "failed", "contested", "not_required")

# asset ownership status -> claim status; None means the claim is left alone
_CLAIM_STATUS_FOR_ASSET = {
    "pending": "pending",
    "verified": "claimed",
    "contested": "contested",
    "failed": None,
    "not_required": None,
}


class PersistenceError(RuntimeError):
    """Metadata write failed after the object was stored; the object has been removed."""


@dataclass(frozen=True)
class NewAsset:
    user_id: UUID
    platform: str
    video_url: str
    data: bytes
    filename: str = "video.mp4"
    content_type: str | None = "video/mp4"
    submission_type: str = "general"
    contest_id: UUID | None = None
    contest_submission_id: UUID | None = None
    ownership_status: str = "pending"
    owner_social_account_id: UUID | None = None
    ownership_reason: str | None = None


@dataclass(frozen=True)
class StoredAsset:
    asset_id: UUID
    storage_path: str
    bucket: str
    fingerprint: str
    ownership_status: str = "pending"


@dataclass(frozen=True)
class OwnershipCheck:
    status: str  # verified | pending | failed | contested
    reason: str
    social_account_id: UUID | None = None
    claimed_by_user_id: UUID | None = None


def _now() -> datetime:
    return datetime.now(UTC)


def verified_asset_for(session: Session, fp_key: str, *, exclude_asset_id: UUID | None = None) -> RawVideoAsset | None:
    stmt = select(RawVideoAsset).where(
        RawVideoAsset.video_fingerprint == fp_key,
        RawVideoAsset.ownership_status == "verified",
    )
    if exclude_asset_id is not None:
        stmt = stmt.where(RawVideoAsset.id != exclude_asset_id)
    return session.execute(stmt.limit(1)).scalar_one_or_none()


def mark_duplicate(row: RawVideoAsset, verified: RawVideoAsset) -> None:
    """Same account re-uploaded a fingerprint it already owns; only the first asset stays verified."""
    row.ownership_status = "failed"
    row.ownership_verified_at = None
    row.ownership_reason = f"Ownership already verified on asset {verified.id}"


class RawVideoAssetStore:
    """Stores the uploaded file first, then its metadata row and claim."""

    def __init__(self, session: Session, objects: LocalObjectStore | None = None) -> None:
        self.session = session
        self.objects = objects or LocalObjectStore()
        self.claims = ClaimRegistry(session)

    def store(self, asset: NewAsset) -> StoredAsset:
        if asset.ownership_status not in ASSET_STATUSES:
            raise ValueError(f"invalid ownership status: {asset.ownership_status}")
        if asset.ownership_status == "verified" and asset.owner_social_account_id is None:
            raise ValueError("verified assets require an owner social account")
        if asset.submission_type == "contest" and asset.contest_submission_id is None:
            raise ValueError("contest assets require a contest submission")

        fp = fingerprint(asset.platform, asset.video_url)
        contest_id = str(asset.contest_id) if asset.submission_type == "contest" and asset.contest_id else None
        path = build_object_path(user_id=str(asset.user_id), filename=asset.filename, contest_id=contest_id)

        # UploadError propagates; nothing has been written to the database yet
        self.objects.put(path, asset.data)

        try:
            row = self._insert_metadata(asset, fp.key, fp.confidence, path)
            claim_status = _CLAIM_STATUS_FOR_ASSET[asset.ownership_status]
            if claim_status == "claimed":
                holder = verified_asset_for(self.session, fp.key, exclude_asset_id=row.id)
                if holder is not None and holder.owner_social_account_id == row.owner_social_account_id:
                    mark_duplicate(row, holder)
                elif holder is not None or not self.claims.upsert_claim(
                    fp.key,
                    asset.platform,
                    row.id,
                    asset.user_id,
                    asset.owner_social_account_id,
                    "claimed",
                    exclusive=True,
                ):
                    self._lose_to_existing_claim(row, fp.key)
            elif claim_status is not None:
                self.claims.upsert_claim(
                    fp.key,
                    asset.platform,
                    row.id,
                    asset.user_id,
                    asset.owner_social_account_id,
                    claim_status,
                )
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            try:
                self.objects.delete(path)
            except OSError as cleanup_exc:
                logger.error("[assets] orphaned object path=%s cleanup_err=%s", path, cleanup_exc)
            logger.warning("[assets] metadata insert failed path=%s err=%s", path, exc)
            raise PersistenceError(f"Failed to persist video metadata: {exc}") from exc

        logger.info(
            "[assets] stored asset_id=%s fingerprint=%s status=%s",
            row.id,
            fp.key,
            row.ownership_status,
        )
        return StoredAsset(
            asset_id=row.id,
            storage_path=path,
            bucket=self.objects.bucket,
            fingerprint=fp.key,
            ownership_status=row.ownership_status,
        )

    def _lose_to_existing_claim(self, row: RawVideoAsset, fp_key: str) -> None:
        # Another account verified this fingerprint between the pre-upload check and now.
        claim = self.claims.get_claim(fp_key)
        holder = None
        if claim is not None and claim.current_owner_social_account_id is not None:
            holder = self.session.get(SocialAccount, claim.current_owner_social_account_id)
        handle = (holder.username if holder is not None else None) or "verified creator"
        row.ownership_status = "failed"
        row.ownership_verified_at = None
        row.ownership_reason = f"Ownership claimed by @{handle}"
        if row.contest_submission_id is not None:
            submission = self.session.get(ContestSubmission, row.contest_submission_id)
            if submission is not None:
                submission.mp4_ownership_status = "failed"
                submission.mp4_ownership_reason = (
                    f"Ownership claimed by @{handle}. Only the original creator can submit this video."
                )
                submission.mp4_owner_social_account_id = None
                submission.verification_status = "failed"
                submission.is_disqualified = True
                submission.ownership_resolved_at = _now()
        self.session.flush()

    def _insert_metadata(self, asset: NewAsset, fp_key: str, confidence: str, path: str) -> RawVideoAsset:
        now = _now()
        verified = asset.ownership_status == "verified"
        row = RawVideoAsset(
            user_id=asset.user_id,
            submission_type=asset.submission_type,
            contest_submission_id=asset.contest_submission_id if asset.submission_type == "contest" else None,
            platform=asset.platform,
            video_url=asset.video_url,
            video_fingerprint=fp_key,
            fingerprint_confidence=confidence,
            storage_bucket=self.objects.bucket,
            storage_path=path,
            size_bytes=len(asset.data),
            content_type=asset.content_type,
            ownership_status=asset.ownership_status,
            owner_social_account_id=asset.owner_social_account_id,
            ownership_reason=asset.ownership_reason,
            ownership_verified_at=now if verified else None,
        )
        self.session.add(row)
        self.session.flush()

        if row.contest_submission_id is not None:
            submission = self.session.get(ContestSubmission, row.contest_submission_id)
            if submission is not None:
                submission.raw_video_asset_id = row.id
                submission.video_fingerprint = fp_key
                submission.mp4_uploaded_by_user_id = asset.user_id
                submission.mp4_ownership_status = (
                    "pending" if asset.ownership_status == "not_required" else asset.ownership_status
                )
                submission.mp4_ownership_reason = asset.ownership_reason
                if verified:
                    submission.mp4_owner_social_account_id = asset.owner_social_account_id
                    submission.social_account_id = asset.owner_social_account_id
                    submission.verification_status = "verified"
                    submission.ownership_resolved_at = now
                if asset.ownership_status == "contested":
                    submission.ownership_contested_at = now

        self.session.add(
            AuditEvent(
                event_type="raw_video_asset_stored",
                source="ui",
                actor_user_id=asset.user_id,
                payload={
                    "asset_id": str(row.id),
                    "fingerprint": fp_key,
                    "ownership_status": asset.ownership_status,
                    "storage_path": path,
                },
            )
        )
        return row


def check_video_ownership(session: Session, video_url: str, user_id: UUID, platform: str) -> OwnershipCheck:
    """Arbitrate a prospective upload against what is already known about its fingerprint."""
    fp = fingerprint(platform, video_url)

    verified = session.execute(
        select(RawVideoAsset, SocialAccount)
        .outerjoin(SocialAccount, SocialAccount.id == RawVideoAsset.owner_social_account_id)
        .where(
            RawVideoAsset.video_fingerprint == fp.key,
            RawVideoAsset.ownership_status == "verified",
        )
        .limit(1)
    ).first()
    if verified is not None:
        asset, owner = verified
        owner_user_id = owner.user_id if owner is not None else asset.user_id
        handle = (owner.username if owner is not None else None) or None
        if asset.user_id == user_id or owner_user_id == user_id:
            return OwnershipCheck(
                status="verified",
                reason=f"Ownership verified via connected account @{handle or 'your account'}",
                social_account_id=asset.owner_social_account_id,
            )
        return OwnershipCheck(
            status="failed",
            reason=(
                f"This video is already claimed by @{handle or 'another user'}. "
                "Only the original creator can submit this video."
            ),
            claimed_by_user_id=owner_user_id,
        )

    accounts = (
        session.execute(
            select(SocialAccount).where(
                SocialAccount.user_id == user_id,
                SocialAccount.platform == platform,
                SocialAccount.verification_status == "VERIFIED",
            )
        )
        .scalars()
        .all()
    )
    if accounts:
        username, _ = extract_video_identifiers(platform, video_url)
        for account in accounts:
            if account_matches_url(account, video_url, platform, username):
                return OwnershipCheck(
                    status="verified",
                    reason=f"Ownership verified via connected account @{account.username}",
                    social_account_id=account.id,
                )

    competing_submission = session.execute(
        select(ContestSubmission.id)
        .where(
            ContestSubmission.video_fingerprint == fp.key,
            ContestSubmission.mp4_ownership_status.in_(["pending", "contested"]),
            ContestSubmission.user_id != user_id,
        )
        .limit(1)
    ).first()
    competing_asset = session.execute(
        select(RawVideoAsset.id)
        .where(
            RawVideoAsset.video_fingerprint == fp.key,
            RawVideoAsset.ownership_status.in_(["pending", "contested"]),
            RawVideoAsset.user_id != user_id,
        )
        .limit(1)
    ).first()
    if competing_submission is not None or competing_asset is not None:
        return OwnershipCheck(
            status="contested",
            reason="Multiple users have submitted this video. Connect your social account to verify ownership.",
        )

    return OwnershipCheck(
        status="pending",
        reason="Please connect your social account to verify ownership of this video.",
    )
