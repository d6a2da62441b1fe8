from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from db.models import AuditEvent, SocialAccount
from ownership.resolver import OwnershipResolver
from verification.accounts import AccountNotFound, AlreadyVerified, unique_verification_code
from verification.payloads import code_in_bio, extract_bio, unwrap_record
from verification.provider import ExternalProviderError, ScraperClient

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class VerificationRequest:
    verification_code: str
    snapshot_id: str


@dataclass(frozen=True)
class IngestOutcome:
    status: str  # verified | failed | ignored
    account_id: UUID
    code_found: bool = False
    resolution: dict | None = None
    resolution_error: str | None = None


class SocialAccountVerifier:
    """UNVERIFIED -> PENDING -> VERIFIED | FAILED, with FAILED -> PENDING on retry.

    Every transition out of PENDING is a compare-and-swap on the current status
    (and on the snapshot id when the caller knows it), so webhook and polling
    deliveries of the same result settle the account exactly once.
    """

    def __init__(self, session: Session, client: ScraperClient | None = None) -> None:
        self.session = session
        self._client = client

    @property
    def client(self) -> ScraperClient:
        if self._client is None:
            self._client = ScraperClient()
        return self._client

    def get_account(self, account_id: UUID) -> SocialAccount:
        account = self.session.get(SocialAccount, account_id)
        if account is None:
            raise AccountNotFound(f"Social account not found: {account_id}")
        return account

    def request_verification(self, account: SocialAccount, *, source: str = "ui") -> VerificationRequest:
        if account.verification_status == "VERIFIED":
            raise AlreadyVerified(f"Social account already verified: {account.id}")

        # raises ExternalProviderError(misconfigured=True) before any job exists
        client = self.client
        client.config.dataset_for(account.platform)

        if not account.verification_code:
            account.verification_code = unique_verification_code(self.session)
            self.session.flush()

        retry = account.verification_status == "FAILED"
        previous_snapshot = account.snapshot_id
        snapshot_id = client.trigger(account.platform, account.profile_url)

        values: dict[str, Any] = {
            "snapshot_id": snapshot_id,
            "webhook_status": "PENDING",
            "verification_status": "PENDING",
            "last_verification_attempt_at": _now(),
        }
        if retry:
            values["profile_data"] = None
        self.session.execute(
            update(SocialAccount)
            .where(SocialAccount.id == account.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.add(
            AuditEvent(
                event_type="verification_requested",
                source=source,
                actor_user_id=account.user_id,
                payload={
                    "account_id": str(account.id),
                    "snapshot_id": snapshot_id,
                    "previous_snapshot_id": previous_snapshot,
                    "retry": retry,
                },
            )
        )
        code = account.verification_code
        self.session.commit()
        logger.info(
            "[verifier] requested account_id=%s snapshot_id=%s retry=%s",
            account.id,
            snapshot_id,
            retry,
        )
        return VerificationRequest(verification_code=code, snapshot_id=snapshot_id)

    def ingest_result(
        self,
        account: SocialAccount,
        profile_data: dict[str, Any] | None,
        *,
        snapshot_id: str | None = None,
        source: str = "system",
    ) -> IngestOutcome:
        account_id = account.id
        record = profile_data if isinstance(profile_data, dict) else {}
        bio = extract_bio(record, account.platform)
        found = code_in_bio(bio, account.verification_code)
        now = _now()

        stmt = update(SocialAccount).where(
            SocialAccount.id == account_id,
            SocialAccount.verification_status == "PENDING",
        )
        if snapshot_id is not None:
            stmt = stmt.where(SocialAccount.snapshot_id == snapshot_id)
        stmt = stmt.values(
            verification_status="VERIFIED" if found else "FAILED",
            webhook_status="COMPLETED",
            profile_data=record,
            verification_attempts=0 if found else SocialAccount.verification_attempts + 1,
            verified_at=now if found else None,
            last_verification_attempt_at=now,
        )
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        if (result.rowcount or 0) == 0:
            self.session.rollback()
            logger.info("[verifier] ignored delivery account_id=%s snapshot_id=%s", account_id, snapshot_id)
            return IngestOutcome(status="ignored", account_id=account_id, code_found=found)

        outcome = "verified" if found else "failed"
        self.session.add(
            AuditEvent(
                event_type="verification_ingested",
                source=source,
                actor_user_id=account.user_id,
                payload={
                    "account_id": str(account_id),
                    "snapshot_id": snapshot_id,
                    "outcome": outcome,
                    "bio_length": len(bio),
                },
            )
        )
        self.session.commit()
        logger.info("[verifier] ingested account_id=%s outcome=%s", account_id, outcome)

        if not found:
            return IngestOutcome(status="failed", account_id=account_id)

        try:
            summary = OwnershipResolver(self.session).resolve_for_account(account_id)
        except Exception as exc:
            # the VERIFIED transition is committed; resolution can be re-run on its own
            self.session.rollback()
            logger.exception("[verifier] ownership resolution failed account_id=%s", account_id)
            return IngestOutcome(
                status="verified",
                account_id=account_id,
                code_found=True,
                resolution_error=str(exc),
            )
        return IngestOutcome(
            status="verified",
            account_id=account_id,
            code_found=True,
            resolution=summary.as_dict(),
        )

    def mark_provider_failure(
        self,
        account: SocialAccount,
        snapshot_id: str | None = None,
        *,
        source: str = "system",
    ) -> IngestOutcome:
        account_id = account.id
        stmt = update(SocialAccount).where(
            SocialAccount.id == account_id,
            SocialAccount.verification_status == "PENDING",
        )
        if snapshot_id is not None:
            stmt = stmt.where(SocialAccount.snapshot_id == snapshot_id)
        stmt = stmt.values(
            webhook_status="FAILED",
            verification_status="FAILED",
            verification_attempts=SocialAccount.verification_attempts + 1,
            last_verification_attempt_at=_now(),
        )
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        if (result.rowcount or 0) == 0:
            self.session.rollback()
            return IngestOutcome(status="ignored", account_id=account_id)
        self.session.add(
            AuditEvent(
                event_type="verification_provider_failed",
                source=source,
                actor_user_id=account.user_id,
                payload={"account_id": str(account_id), "snapshot_id": snapshot_id},
            )
        )
        self.session.commit()
        logger.info("[verifier] provider failure account_id=%s snapshot_id=%s", account_id, snapshot_id)
        return IngestOutcome(status="failed", account_id=account_id)

    def refresh_status(self, account: SocialAccount, *, source: str = "system") -> str:
        """Poll the provider once for a pending job; return verified/failed/ignored/pending."""
        if not (
            account.webhook_status == "PENDING"
            and account.verification_status == "PENDING"
            and account.snapshot_id
        ):
            return "pending" if account.verification_status == "PENDING" else "ignored"

        snapshot_id = account.snapshot_id
        try:
            status = self.client.get_status(snapshot_id)
            if status.state == "failed":
                return self.mark_provider_failure(account, snapshot_id, source=source).status
            if status.state != "ready":
                return "pending"
            record = status.record
            if record is None:
                record, _ = unwrap_record(self.client.fetch_result(snapshot_id))
        except ExternalProviderError as exc:
            logger.warning("[verifier] provider poll failed account_id=%s err=%s", account.id, exc)
            return "pending"
        if record is None:
            return "pending"
        return self.ingest_result(account, record, snapshot_id=snapshot_id, source=source).status
