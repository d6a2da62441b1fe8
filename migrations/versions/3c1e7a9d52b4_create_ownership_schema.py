"""create ownership and verification schema

Revision ID: 3c1e7a9d52b4
Revises:
Create Date: 2026-10-16 09:00:00

Touched tables:
- social_account, contest_submission, raw_video_asset, video_ownership_claim, job, audit_event

Operational notes:
- raw_video_asset.contest_submission_id is a real foreign key; contest_submission.raw_video_asset_id
  is only indexed so the two tables do not form a cycle
- the verified-implies-owner rule lives in ck_raw_video_asset_verified_has_owner
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "3c1e7a9d52b4"
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "social_account",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("profile_url", sa.Text(), nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("verification_code", sa.Text(), nullable=False),
        sa.Column("snapshot_id", sa.Text(), nullable=True),
        sa.Column("webhook_status", sa.Text(), nullable=True),
        sa.Column("verification_status", sa.Text(), nullable=False, server_default="UNVERIFIED"),
        sa.Column("verification_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("profile_data", JSON, nullable=True),
        sa.Column("last_verification_attempt_at", TS, nullable=True),
        sa.Column("verified_at", TS, nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "platform in ('tiktok', 'instagram', 'youtube')", name="ck_social_account_platform"
        ),
        sa.CheckConstraint(
            "webhook_status is null or webhook_status in ('PENDING', 'COMPLETED', 'FAILED')",
            name="ck_social_account_webhook_status",
        ),
        sa.CheckConstraint(
            "verification_status in ('UNVERIFIED', 'PENDING', 'VERIFIED', 'FAILED')",
            name="ck_social_account_verification_status",
        ),
        sa.CheckConstraint("verification_attempts >= 0", name="ck_social_account_attempts"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("verification_code"),
        sa.UniqueConstraint("platform", "profile_url", name="uq_social_account_platform_profile"),
    )
    op.create_index("ix_social_account_user_id", "social_account", ["user_id"])
    op.create_index("ix_social_account_snapshot_id", "social_account", ["snapshot_id"])

    op.create_table(
        "contest_submission",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("contest_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("original_video_url", sa.Text(), nullable=False),
        sa.Column("video_fingerprint", sa.Text(), nullable=True),
        sa.Column("social_account_id", sa.Uuid(), nullable=True),
        sa.Column("raw_video_asset_id", sa.Uuid(), nullable=True),
        sa.Column("mp4_ownership_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("mp4_ownership_reason", sa.Text(), nullable=True),
        sa.Column("mp4_owner_social_account_id", sa.Uuid(), nullable=True),
        sa.Column("mp4_uploaded_by_user_id", sa.Uuid(), nullable=True),
        sa.Column("verification_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("is_disqualified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ownership_contested_at", TS, nullable=True),
        sa.Column("ownership_resolved_at", TS, nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "platform in ('tiktok', 'instagram', 'youtube')", name="ck_contest_submission_platform"
        ),
        sa.CheckConstraint(
            "mp4_ownership_status in ('pending', 'verified', 'failed', 'contested', 'not_uploaded')",
            name="ck_contest_submission_mp4_ownership_status",
        ),
        sa.CheckConstraint(
            "verification_status in ('pending', 'verified', 'failed')",
            name="ck_contest_submission_verification_status",
        ),
        sa.ForeignKeyConstraint(["social_account_id"], ["social_account.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["mp4_owner_social_account_id"], ["social_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contest_submission_contest_id", "contest_submission", ["contest_id"])
    op.create_index("ix_contest_submission_user_id", "contest_submission", ["user_id"])
    op.create_index("ix_contest_submission_video_fingerprint", "contest_submission", ["video_fingerprint"])
    op.create_index("ix_contest_submission_raw_video_asset_id", "contest_submission", ["raw_video_asset_id"])

    op.create_table(
        "raw_video_asset",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("submission_type", sa.Text(), nullable=False, server_default="general"),
        sa.Column("contest_submission_id", sa.Uuid(), nullable=True),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("video_url", sa.Text(), nullable=False),
        sa.Column("video_fingerprint", sa.Text(), nullable=False),
        sa.Column("fingerprint_confidence", sa.Text(), nullable=False, server_default="high"),
        sa.Column("storage_bucket", sa.Text(), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("content_type", sa.Text(), nullable=True),
        sa.Column("ownership_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("ownership_reason", sa.Text(), nullable=True),
        sa.Column("owner_social_account_id", sa.Uuid(), nullable=True),
        sa.Column("ownership_verified_at", TS, nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "platform in ('tiktok', 'instagram', 'youtube')", name="ck_raw_video_asset_platform"
        ),
        sa.CheckConstraint(
            "submission_type in ('contest', 'general')", name="ck_raw_video_asset_submission_type"
        ),
        sa.CheckConstraint(
            "ownership_status in ('pending', 'verified', 'failed', 'contested', 'not_required')",
            name="ck_raw_video_asset_ownership_status",
        ),
        sa.CheckConstraint(
            "fingerprint_confidence in ('high', 'low')",
            name="ck_raw_video_asset_fingerprint_confidence",
        ),
        sa.CheckConstraint(
            "ownership_status != 'verified' or owner_social_account_id is not null",
            name="ck_raw_video_asset_verified_has_owner",
        ),
        sa.ForeignKeyConstraint(["contest_submission_id"], ["contest_submission.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_social_account_id"], ["social_account.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_raw_video_asset_user_id", "raw_video_asset", ["user_id"])
    op.create_index("ix_raw_video_asset_fingerprint", "raw_video_asset", ["video_fingerprint"])
    op.create_index("ix_raw_video_asset_ownership_status", "raw_video_asset", ["ownership_status"])

    op.create_table(
        "video_ownership_claim",
        sa.Column("video_fingerprint", sa.Text(), nullable=False),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("current_owner_asset_id", sa.Uuid(), nullable=True),
        sa.Column("current_owner_user_id", sa.Uuid(), nullable=True),
        sa.Column("current_owner_social_account_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="unclaimed"),
        sa.Column("contested_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_contested_at", TS, nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "platform in ('tiktok', 'instagram', 'youtube')", name="ck_video_ownership_claim_platform"
        ),
        sa.CheckConstraint(
            "status in ('unclaimed', 'pending', 'claimed', 'contested')",
            name="ck_video_ownership_claim_status",
        ),
        sa.CheckConstraint("contested_count >= 0", name="ck_video_ownership_claim_contested_count"),
        sa.ForeignKeyConstraint(["current_owner_asset_id"], ["raw_video_asset.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["current_owner_social_account_id"], ["social_account.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("video_fingerprint"),
    )
    op.create_index("ix_video_ownership_claim_status", "video_ownership_claim", ["status"])

    op.create_table(
        "job",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("job_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("payload", JSON, nullable=True),
        sa.Column("result", JSON, nullable=True),
        sa.Column("error_payload", JSON, nullable=True),
        sa.Column("queued_at", TS, nullable=True),
        sa.Column("started_at", TS, nullable=True),
        sa.Column("finished_at", TS, nullable=True),
        sa.Column("created_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", TS, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "job_type in ('reconcile_verifications', 'resolve_ownership')", name="ck_job_job_type"
        ),
        sa.CheckConstraint("status in ('queued', 'running', 'succeeded', 'failed')", name="ck_job_status"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "audit_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("occurred_at", TS, nullable=False, server_default=sa.func.now()),
        sa.Column("payload", JSON, nullable=True),
        sa.CheckConstraint("source in ('ui', 'system', 'worker', 'webhook')", name="ck_audit_event_source"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_event_event_type", "audit_event", ["event_type"])


def downgrade() -> None:
    op.drop_index("ix_audit_event_event_type", table_name="audit_event")
    op.drop_table("audit_event")
    op.drop_table("job")
    op.drop_index("ix_video_ownership_claim_status", table_name="video_ownership_claim")
    op.drop_table("video_ownership_claim")
    op.drop_index("ix_raw_video_asset_ownership_status", table_name="raw_video_asset")
    op.drop_index("ix_raw_video_asset_fingerprint", table_name="raw_video_asset")
    op.drop_index("ix_raw_video_asset_user_id", table_name="raw_video_asset")
    op.drop_table("raw_video_asset")
    op.drop_index("ix_contest_submission_raw_video_asset_id", table_name="contest_submission")
    op.drop_index("ix_contest_submission_video_fingerprint", table_name="contest_submission")
    op.drop_index("ix_contest_submission_user_id", table_name="contest_submission")
    op.drop_index("ix_contest_submission_contest_id", table_name="contest_submission")
    op.drop_table("contest_submission")
    op.drop_index("ix_social_account_snapshot_id", table_name="social_account")
    op.drop_index("ix_social_account_user_id", table_name="social_account")
    op.drop_table("social_account")
