from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import AuditEvent, ContestSubmission, RawVideoAsset, SocialAccount
from ownership.assets import mark_duplicate, verified_asset_for
from ownership.claims import ClaimRegistry
from ownership.matching import account_matches_url

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class AssociationSummary:
    asset_ids: list[UUID] = field(default_factory=list)
    submission_ids: list[UUID] = field(default_factory=list)


@dataclass
class ResolutionSummary:
    account_id: UUID
    associated_assets: int = 0
    associated_submissions: int = 0
    promoted: list[UUID] = field(default_factory=list)
    lost: list[UUID] = field(default_factory=list)
    disqualified_assets: list[UUID] = field(default_factory=list)
    disqualified_submissions: list[UUID] = field(default_factory=list)
    contested_assets: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, list):
                payload[key] = [str(item) for item in value]
        payload["account_id"] = str(self.account_id)
        return payload


class OwnershipResolver:
    """Binds a social account to its user's uploads and settles claims once it is VERIFIED.

    The first account to reach VERIFIED for a fingerprint keeps it. Competitors
    are resolved once; a later verification by a losing account does not reopen them.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.claims = ClaimRegistry(session)

    def associate_account_with_pending_assets(self, account: SocialAccount) -> AssociationSummary:
        summary = AssociationSummary()
        assets = (
            self.session.execute(
                select(RawVideoAsset).where(
                    RawVideoAsset.user_id == account.user_id,
                    RawVideoAsset.platform == account.platform,
                    RawVideoAsset.owner_social_account_id.is_(None),
                )
            )
            .scalars()
            .all()
        )
        for asset in assets:
            if not account_matches_url(account, asset.video_url, account.platform):
                continue
            asset.owner_social_account_id = account.id
            asset.ownership_reason = "Linked to connected account"
            summary.asset_ids.append(asset.id)
            if asset.contest_submission_id is not None:
                submission = self.session.get(ContestSubmission, asset.contest_submission_id)
                if submission is not None and submission.social_account_id is None:
                    submission.social_account_id = account.id
                    submission.mp4_ownership_reason = "Account linked, pending verification"
                    submission.mp4_uploaded_by_user_id = account.user_id
                    summary.submission_ids.append(submission.id)
        self.session.flush()

        submissions = (
            self.session.execute(
                select(ContestSubmission).where(
                    ContestSubmission.user_id == account.user_id,
                    ContestSubmission.platform == account.platform,
                    ContestSubmission.social_account_id.is_(None),
                )
            )
            .scalars()
            .all()
        )
        for submission in submissions:
            if not account_matches_url(account, submission.original_video_url, account.platform):
                continue
            submission.social_account_id = account.id
            submission.mp4_ownership_reason = "Account linked, pending verification"
            summary.submission_ids.append(submission.id)

        self.session.flush()
        if summary.asset_ids or summary.submission_ids:
            logger.info(
                "[resolver] associated account_id=%s assets=%s submissions=%s",
                account.id,
                len(summary.asset_ids),
                len(summary.submission_ids),
            )
        return summary

    def resolve_for_account(self, account_id: UUID) -> ResolutionSummary:
        account = self.session.get(SocialAccount, account_id)
        if account is None:
            raise RuntimeError(f"Social account not found: {account_id}")

        summary = ResolutionSummary(account_id=account.id)
        association = self.associate_account_with_pending_assets(account)
        summary.associated_assets = len(association.asset_ids)
        summary.associated_submissions = len(association.submission_ids)

        if account.verification_status != "VERIFIED":
            self.session.commit()
            return summary

        owned = (
            self.session.execute(
                select(RawVideoAsset)
                .where(
                    RawVideoAsset.owner_social_account_id == account.id,
                    RawVideoAsset.ownership_status.in_(["pending", "contested"]),
                )
                .order_by(RawVideoAsset.created_at, RawVideoAsset.id)
            )
            .scalars()
            .all()
        )
        for asset in owned:
            holder = verified_asset_for(self.session, asset.video_fingerprint, exclude_asset_id=asset.id)
            if holder is not None and holder.owner_social_account_id == account.id:
                mark_duplicate(asset, holder)
                self._mark_submission_verified(asset, account)
                continue
            if holder is None and self.claims.upsert_claim(
                asset.video_fingerprint,
                asset.platform,
                asset.id,
                account.user_id,
                account.id,
                "claimed",
                exclusive=True,
            ):
                self._promote(asset, account, summary)
            else:
                self._lose(asset, summary)

        self.session.add(
            AuditEvent(
                event_type="ownership_resolved",
                source="system",
                actor_user_id=account.user_id,
                payload=summary.as_dict(),
            )
        )
        self.session.commit()
        logger.info(
            "[resolver] resolved account_id=%s promoted=%s lost=%s disqualified=%s",
            account.id,
            len(summary.promoted),
            len(summary.lost),
            len(summary.disqualified_assets) + len(summary.disqualified_submissions),
        )
        return summary

    def _mark_submission_verified(self, asset: RawVideoAsset, account: SocialAccount) -> None:
        if asset.contest_submission_id is None:
            return
        submission = self.session.get(ContestSubmission, asset.contest_submission_id)
        if submission is None:
            return
        submission.mp4_ownership_status = "verified"
        submission.mp4_owner_social_account_id = account.id
        submission.mp4_ownership_reason = f"Ownership verified for @{account.username or 'your account'}"
        submission.verification_status = "verified"
        submission.ownership_resolved_at = _now()

    def _promote(self, asset: RawVideoAsset, account: SocialAccount, summary: ResolutionSummary) -> None:
        asset.ownership_status = "verified"
        asset.ownership_verified_at = _now()
        asset.ownership_reason = "Ownership verified via connected account"
        self._mark_submission_verified(asset, account)
        summary.promoted.append(asset.id)
        self.session.flush()
        self._settle_competitors(asset, account, summary)

    def _lose(self, asset: RawVideoAsset, summary: ResolutionSummary) -> None:
        claim = self.claims.get_claim(asset.video_fingerprint)
        holder = None
        if claim is not None and claim.current_owner_social_account_id is not None:
            holder = self.session.get(SocialAccount, claim.current_owner_social_account_id)
        handle = (holder.username if holder is not None else None) or "verified creator"
        summary.lost.append(asset.id)
        if asset.fingerprint_confidence == "low":
            asset.ownership_status = "contested"
            asset.ownership_reason = f"Ownership contested by @{handle}"
            self.claims.upsert_claim(
                asset.video_fingerprint, asset.platform, asset.id, asset.user_id, None, "contested"
            )
            self._mark_submission_contested(asset.contest_submission_id)
            summary.contested_assets.append(asset.id)
        else:
            asset.ownership_status = "failed"
            asset.ownership_reason = f"Ownership claimed by @{handle}"
            self._disqualify_submission(asset.contest_submission_id, handle, summary)
        self.session.flush()

    def _settle_competitors(self, winner: RawVideoAsset, account: SocialAccount, summary: ResolutionSummary) -> None:
        handle = account.username or "verified creator"
        low_confidence = winner.fingerprint_confidence == "low"
        competitors = (
            self.session.execute(
                select(RawVideoAsset).where(
                    RawVideoAsset.video_fingerprint == winner.video_fingerprint,
                    RawVideoAsset.id != winner.id,
                    RawVideoAsset.ownership_status != "not_required",
                )
            )
            .scalars()
            .all()
        )
        handled_submissions: set[UUID] = set()
        for other in competitors:
            if other.owner_social_account_id == account.id:
                continue
            if other.contest_submission_id is not None:
                handled_submissions.add(other.contest_submission_id)
            if low_confidence:
                if other.ownership_status in ("verified", "failed"):
                    continue
                other.ownership_status = "contested"
                other.ownership_reason = f"Ownership contested by @{handle}"
                self.claims.upsert_claim(
                    other.video_fingerprint, other.platform, other.id, other.user_id, None, "contested"
                )
                self._mark_submission_contested(other.contest_submission_id)
                summary.contested_assets.append(other.id)
                continue
            if other.ownership_status == "failed":
                continue
            other.ownership_status = "failed"
            other.ownership_verified_at = None
            other.ownership_reason = f"Ownership claimed by @{handle}"
            summary.disqualified_assets.append(other.id)
            self._disqualify_submission(other.contest_submission_id, handle, summary)

        if low_confidence:
            self.session.flush()
            return

        # submissions that never got an upload but point at the same video
        orphans = (
            self.session.execute(
                select(ContestSubmission).where(
                    ContestSubmission.video_fingerprint == winner.video_fingerprint,
                    ContestSubmission.is_disqualified.is_(False),
                    ContestSubmission.mp4_ownership_status.in_(["pending", "contested", "not_uploaded"]),
                )
            )
            .scalars()
            .all()
        )
        for submission in orphans:
            if submission.id in handled_submissions or submission.id == winner.contest_submission_id:
                continue
            if submission.social_account_id == account.id or submission.user_id == account.user_id:
                continue
            self._disqualify_submission(submission.id, handle, summary)
        self.session.flush()

    def _mark_submission_contested(self, submission_id: UUID | None) -> None:
        if submission_id is None:
            return
        submission = self.session.get(ContestSubmission, submission_id)
        if submission is None or submission.is_disqualified:
            return
        submission.mp4_ownership_status = "contested"
        submission.ownership_contested_at = _now()

    def _disqualify_submission(self, submission_id: UUID | None, handle: str, summary: ResolutionSummary) -> None:
        if submission_id is None:
            return
        submission = self.session.get(ContestSubmission, submission_id)
        if submission is None or submission.is_disqualified:
            return
        submission.mp4_ownership_status = "failed"
        submission.mp4_ownership_reason = (
            f"Ownership claimed by @{handle}. Only the original creator can submit this video."
        )
        submission.verification_status = "failed"
        submission.is_disqualified = True
        submission.ownership_resolved_at = _now()
        summary.disqualified_submissions.append(submission.id)
        self.session.add(
            AuditEvent(
                event_type="competitor_disqualified",
                source="system",
                actor_user_id=submission.user_id,
                payload={"submission_id": str(submission.id), "claimed_by": handle},
            )
        )
