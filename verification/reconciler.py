from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import SocialAccount
from verification.provider import ScraperClient
from verification.verifier import SocialAccountVerifier

logger = logging.getLogger(__name__)


def default_batch_size() -> int:
    return int(os.getenv("RECONCILE_BATCH_SIZE", "50"))


@dataclass
class ReconcileSummary:
    processed: int = 0
    verified: int = 0
    failed: int = 0
    still_pending: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "verified": self.verified,
            "failed": self.failed,
            "stillPending": self.still_pending,
            "errors": self.errors,
        }


class VerificationReconciler:
    """Polls the provider for accounts whose webhook never arrived.

    Holds no state between runs; overlapping runs are safe because the verifier
    only settles accounts that are still PENDING on the same snapshot.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        client: ScraperClient | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.client = client

    def _eligible_ids(self, limit: int) -> list:
        session = self.session_factory()
        try:
            stmt = (
                select(SocialAccount.id)
                .where(
                    SocialAccount.webhook_status == "PENDING",
                    SocialAccount.verification_status == "PENDING",
                    SocialAccount.snapshot_id.is_not(None),
                )
                .order_by(SocialAccount.last_verification_attempt_at.asc(), SocialAccount.id)
                .limit(limit)
            )
            return list(session.execute(stmt).scalars().all())
        finally:
            session.close()

    def reconcile(self, limit: int | None = None) -> ReconcileSummary:
        limit = max(1, min(limit if limit is not None else default_batch_size(), 500))
        summary = ReconcileSummary()
        account_ids = self._eligible_ids(limit)
        if not account_ids:
            return summary

        client = self.client or ScraperClient()
        for account_id in account_ids:
            session = self.session_factory()
            try:
                account = session.get(SocialAccount, account_id)
                if account is None:
                    continue
                verifier = SocialAccountVerifier(session, client=client)
                outcome = verifier.refresh_status(account, source="worker")
                if outcome == "pending":
                    summary.still_pending += 1
                    continue
                summary.processed += 1
                if outcome == "verified":
                    summary.verified += 1
                elif outcome == "failed":
                    summary.failed += 1
            except Exception:
                session.rollback()
                summary.errors += 1
                logger.exception("[reconcile] account_id=%s failed", account_id)
            finally:
                session.close()

        logger.info(
            "[reconcile] processed=%s verified=%s failed=%s stillPending=%s errors=%s",
            summary.processed,
            summary.verified,
            summary.failed,
            summary.still_pending,
            summary.errors,
        )
        return summary
