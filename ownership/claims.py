from __future__ import annotations

from datetime import UTC, datetime
import logging
from uuid import UUID

from sqlalchemy import case, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models import VideoOwnershipClaim

logger = logging.getLogger(__name__)

CLAIM_STATUSES = ("unclaimed", "pending", "claimed", "contested")


def _now() -> datetime:
    return datetime.now(UTC)


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for claims: {dialect}")


class ClaimRegistry:
    """One row per fingerprint; every write is conditional on the row's current state.

    The registry never commits; callers own the transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_claim(self, fingerprint: str) -> VideoOwnershipClaim | None:
        stmt = (
            select(VideoOwnershipClaim)
            .where(VideoOwnershipClaim.video_fingerprint == fingerprint)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _insert_if_absent(
        self,
        fingerprint: str,
        platform: str,
        asset_id: UUID | None,
        user_id: UUID | None,
        social_account_id: UUID | None,
        status: str,
    ) -> bool:
        claimed = status == "claimed"
        contested = status == "contested"
        now = _now()
        insert = _insert_for(self.session)
        stmt = (
            insert(VideoOwnershipClaim)
            .values(
                video_fingerprint=fingerprint,
                platform=platform,
                current_owner_asset_id=asset_id if claimed else None,
                current_owner_user_id=user_id if claimed else None,
                current_owner_social_account_id=social_account_id if claimed else None,
                status=status,
                contested_count=1 if contested else 0,
                last_contested_at=now if contested else None,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["video_fingerprint"])
        )
        result = self.session.execute(stmt)
        return (result.rowcount or 0) > 0

    def upsert_claim(
        self,
        fingerprint: str,
        platform: str,
        asset_id: UUID | None,
        user_id: UUID | None,
        social_account_id: UUID | None,
        status: str,
        *,
        exclusive: bool = False,
    ) -> bool:
        """Apply ``status`` to the claim on ``fingerprint``; return whether anything changed.

        ``claimed`` overwrites the owner (last writer wins) unless ``exclusive`` is set,
        in which case it only applies while no other social account holds the claim.
        ``contested`` bumps the counter without demoting a claimed row. ``pending``
        only promotes an ``unclaimed`` row. ``unclaimed`` never touches an existing row.
        """
        if status not in CLAIM_STATUSES:
            raise ValueError(f"invalid claim status: {status}")

        if self._insert_if_absent(fingerprint, platform, asset_id, user_id, social_account_id, status):
            logger.info("[claims] created fingerprint=%s status=%s", fingerprint, status)
            return True

        table = VideoOwnershipClaim
        stmt = update(table).where(table.video_fingerprint == fingerprint)

        if status == "claimed":
            if exclusive:
                stmt = stmt.where(
                    or_(
                        table.status != "claimed",
                        table.current_owner_social_account_id.is_(None),
                        table.current_owner_social_account_id == social_account_id,
                    )
                )
            stmt = stmt.values(
                status="claimed",
                current_owner_asset_id=asset_id,
                current_owner_user_id=user_id,
                current_owner_social_account_id=social_account_id,
            )
        elif status == "contested":
            stmt = stmt.values(
                status=case((table.status == "claimed", "claimed"), else_="contested"),
                contested_count=table.contested_count + 1,
                last_contested_at=_now(),
            )
        elif status == "pending":
            stmt = stmt.where(table.status == "unclaimed").values(status="pending")
        else:
            return False

        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        applied = (result.rowcount or 0) > 0
        logger.info(
            "[claims] update fingerprint=%s status=%s exclusive=%s applied=%s",
            fingerprint,
            status,
            exclusive,
            applied,
        )
        return applied
