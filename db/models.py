from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

PLATFORMS = ("tiktok", "instagram", "youtube")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _platform_check(column: str, name: str) -> CheckConstraint:
    values = ", ".join(f"'{p}'" for p in PLATFORMS)
    return CheckConstraint(f"{column} in ({values})", name=name)


class SocialAccount(Base):
    __tablename__ = "social_account"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    platform: Mapped[str] = mapped_column(Text)
    profile_url: Mapped[str] = mapped_column(Text)
    username: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_code: Mapped[str] = mapped_column(Text, unique=True)
    snapshot_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    webhook_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_status: Mapped[str] = mapped_column(Text, default="UNVERIFIED")
    verification_attempts: Mapped[int] = mapped_column(Integer, default=0)
    profile_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    last_verification_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        _platform_check("platform", "ck_social_account_platform"),
        CheckConstraint(
            "webhook_status is null or webhook_status in ('PENDING', 'COMPLETED', 'FAILED')",
            name="ck_social_account_webhook_status",
        ),
        CheckConstraint(
            "verification_status in ('UNVERIFIED', 'PENDING', 'VERIFIED', 'FAILED')",
            name="ck_social_account_verification_status",
        ),
        CheckConstraint("verification_attempts >= 0", name="ck_social_account_attempts"),
        UniqueConstraint("platform", "profile_url", name="uq_social_account_platform_profile"),
    )


class ContestSubmission(Base):
    __tablename__ = "contest_submission"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    contest_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    user_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    platform: Mapped[str] = mapped_column(Text)
    original_video_url: Mapped[str] = mapped_column(Text)
    video_fingerprint: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    social_account_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("social_account.id", ondelete="SET NULL"), nullable=True
    )
    raw_video_asset_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    mp4_ownership_status: Mapped[str] = mapped_column(Text, default="pending")
    mp4_ownership_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    mp4_owner_social_account_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("social_account.id", ondelete="SET NULL"), nullable=True
    )
    mp4_uploaded_by_user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    verification_status: Mapped[str] = mapped_column(Text, default="pending")
    is_disqualified: Mapped[bool] = mapped_column(Boolean, default=False)
    ownership_contested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ownership_resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        _platform_check("platform", "ck_contest_submission_platform"),
        CheckConstraint(
            "mp4_ownership_status in ('pending', 'verified', 'failed', 'contested', 'not_uploaded')",
            name="ck_contest_submission_mp4_ownership_status",
        ),
        CheckConstraint(
            "verification_status in ('pending', 'verified', 'failed')",
            name="ck_contest_submission_verification_status",
        ),
    )


class RawVideoAsset(Base):
    __tablename__ = "raw_video_asset"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    submission_type: Mapped[str] = mapped_column(Text, default="general")
    contest_submission_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("contest_submission.id", ondelete="CASCADE"), nullable=True
    )
    platform: Mapped[str] = mapped_column(Text)
    video_url: Mapped[str] = mapped_column(Text)
    video_fingerprint: Mapped[str] = mapped_column(Text)
    fingerprint_confidence: Mapped[str] = mapped_column(Text, default="high")
    storage_bucket: Mapped[str] = mapped_column(Text)
    storage_path: Mapped[str] = mapped_column(Text)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    content_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    ownership_status: Mapped[str] = mapped_column(Text, default="pending")
    ownership_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_social_account_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("social_account.id", ondelete="SET NULL"), nullable=True
    )
    ownership_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        _platform_check("platform", "ck_raw_video_asset_platform"),
        CheckConstraint(
            "submission_type in ('contest', 'general')",
            name="ck_raw_video_asset_submission_type",
        ),
        CheckConstraint(
            "ownership_status in ('pending', 'verified', 'failed', 'contested', 'not_required')",
            name="ck_raw_video_asset_ownership_status",
        ),
        CheckConstraint(
            "fingerprint_confidence in ('high', 'low')",
            name="ck_raw_video_asset_fingerprint_confidence",
        ),
        CheckConstraint(
            "ownership_status != 'verified' or owner_social_account_id is not null",
            name="ck_raw_video_asset_verified_has_owner",
        ),
        Index("ix_raw_video_asset_fingerprint", "video_fingerprint"),
        Index("ix_raw_video_asset_ownership_status", "ownership_status"),
    )


class VideoOwnershipClaim(Base):
    __tablename__ = "video_ownership_claim"

    video_fingerprint: Mapped[str] = mapped_column(Text, primary_key=True)
    platform: Mapped[str] = mapped_column(Text)
    current_owner_asset_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("raw_video_asset.id", ondelete="SET NULL"), nullable=True
    )
    current_owner_user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    current_owner_social_account_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("social_account.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(Text, default="unclaimed")
    contested_count: Mapped[int] = mapped_column(Integer, default=0)
    last_contested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        _platform_check("platform", "ck_video_ownership_claim_platform"),
        CheckConstraint(
            "status in ('unclaimed', 'pending', 'claimed', 'contested')",
            name="ck_video_ownership_claim_status",
        ),
        CheckConstraint("contested_count >= 0", name="ck_video_ownership_claim_contested_count"),
        Index("ix_video_ownership_claim_status", "status"),
    )


class Job(Base):
    __tablename__ = "job"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_type: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error_payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    queued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "job_type in ('reconcile_verifications', 'resolve_ownership')",
            name="ck_job_job_type",
        ),
        CheckConstraint("status in ('queued', 'running', 'succeeded', 'failed')", name="ck_job_status"),
    )


class AuditEvent(Base):
    __tablename__ = "audit_event"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    event_type: Mapped[str] = mapped_column(Text)
    source: Mapped[str] = mapped_column(Text)
    actor_user_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "source in ('ui', 'system', 'worker', 'webhook')",
            name="ck_audit_event_source",
        ),
        Index("ix_audit_event_event_type", "event_type"),
    )
