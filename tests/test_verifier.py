from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select

import verification.verifier as verifier_module
from db.models import AuditEvent, RawVideoAsset
from verification.accounts import AccountNotFound, AlreadyVerified
from verification.provider import ExternalProviderError, JobStatus
from verification.verifier import SocialAccountVerifier

VIDEO = "https://www.tiktok.com/@creator_x/video/7300000000000000001"
BIO_WITH_CODE = {"url": "https://www.tiktok.com/@creator_x", "signature": "Welcome! Code ABC123 here"}
BIO_WITHOUT_CODE = {"url": "https://www.tiktok.com/@creator_x", "signature": "no code here"}


def _pending(make_account, snapshot_id: str = "snap-1", code: str = "ABC123", **kwargs):
    return make_account(
        code=code,
        status="PENDING",
        webhook_status="PENDING",
        snapshot_id=snapshot_id,
        **kwargs,
    )


def test_request_verification_moves_account_to_pending(session, make_account, scraper_factory) -> None:
    account = make_account(code="ABC123")
    scraper = scraper_factory(snapshot_ids=["snap-1"])

    request = SocialAccountVerifier(session, client=scraper).request_verification(account)

    assert request.verification_code == "ABC123"
    assert request.snapshot_id == "snap-1"
    assert scraper.triggered == [("tiktok", "https://www.tiktok.com/@creator_x")]
    session.refresh(account)
    assert account.verification_status == "PENDING"
    assert account.webhook_status == "PENDING"
    assert account.snapshot_id == "snap-1"
    assert account.last_verification_attempt_at is not None
    events = session.execute(select(AuditEvent.event_type)).scalars().all()
    assert events == ["verification_requested"]


def test_request_verification_rejects_verified_account(session, make_account, scraper_factory) -> None:
    account = make_account(status="VERIFIED")
    scraper = scraper_factory()
    with pytest.raises(AlreadyVerified):
        SocialAccountVerifier(session, client=scraper).request_verification(account)
    assert scraper.triggered == []


def test_misconfigured_provider_creates_no_job(session, make_account, scraper_factory, provider_config_factory) -> None:
    account = make_account()
    scraper = scraper_factory(config=provider_config_factory(tiktok=""))

    with pytest.raises(ExternalProviderError) as exc_info:
        SocialAccountVerifier(session, client=scraper).request_verification(account)

    assert exc_info.value.misconfigured
    assert scraper.triggered == []
    session.refresh(account)
    assert account.verification_status == "UNVERIFIED"
    assert account.snapshot_id is None


def test_retry_from_failed_clears_profile_data(session, make_account, scraper_factory) -> None:
    account = make_account(code="ABC123", status="FAILED", snapshot_id="snap-old", webhook_status="COMPLETED")
    account.profile_data = {"signature": "old bio"}
    account.verification_attempts = 1
    session.commit()

    request = SocialAccountVerifier(session, client=scraper_factory(snapshot_ids=["snap-new"])).request_verification(
        account
    )

    assert request.snapshot_id == "snap-new"
    session.refresh(account)
    assert account.verification_status == "PENDING"
    assert account.webhook_status == "PENDING"
    assert account.snapshot_id == "snap-new"
    assert account.profile_data is None
    assert account.verification_attempts == 1


def test_ingest_with_code_verifies(session, make_account) -> None:
    account = _pending(make_account)
    outcome = SocialAccountVerifier(session).ingest_result(account, BIO_WITH_CODE, snapshot_id="snap-1")

    assert outcome.status == "verified"
    assert outcome.code_found
    assert outcome.resolution is not None
    session.refresh(account)
    assert account.verification_status == "VERIFIED"
    assert account.webhook_status == "COMPLETED"
    assert account.verification_attempts == 0
    assert account.verified_at is not None
    assert account.profile_data == BIO_WITH_CODE


def test_ingest_without_code_fails_and_counts_attempt(session, make_account) -> None:
    account = _pending(make_account)
    outcome = SocialAccountVerifier(session).ingest_result(account, BIO_WITHOUT_CODE, snapshot_id="snap-1")

    assert outcome.status == "failed"
    session.refresh(account)
    assert account.verification_status == "FAILED"
    assert account.webhook_status == "COMPLETED"
    assert account.verification_attempts == 1
    assert account.verified_at is None


def test_second_delivery_is_ignored(session, make_account) -> None:
    account = _pending(make_account)
    verifier = SocialAccountVerifier(session)
    assert verifier.ingest_result(account, BIO_WITHOUT_CODE, snapshot_id="snap-1").status == "failed"

    again = verifier.ingest_result(account, BIO_WITH_CODE, snapshot_id="snap-1")

    assert again.status == "ignored"
    session.refresh(account)
    assert account.verification_status == "FAILED"
    assert account.verification_attempts == 1
    ingested = session.execute(
        select(AuditEvent).where(AuditEvent.event_type == "verification_ingested")
    ).scalars().all()
    assert len(ingested) == 1


def test_stale_snapshot_is_ignored(session, make_account) -> None:
    account = _pending(make_account, snapshot_id="snap-2")
    outcome = SocialAccountVerifier(session).ingest_result(account, BIO_WITH_CODE, snapshot_id="snap-1")
    assert outcome.status == "ignored"
    session.refresh(account)
    assert account.verification_status == "PENDING"


def test_verification_resolves_pending_uploads(session, make_account, make_asset) -> None:
    account = _pending(make_account)
    asset = make_asset(user_id=account.user_id, video_url=VIDEO, owner=account)

    outcome = SocialAccountVerifier(session).ingest_result(account, BIO_WITH_CODE, snapshot_id="snap-1")

    assert outcome.resolution["promoted"] == [str(asset.id)]
    assert session.get(RawVideoAsset, asset.id).ownership_status == "verified"


def test_resolution_failure_keeps_verified_state(session, make_account, monkeypatch) -> None:
    account = _pending(make_account)

    def boom(self, account_id):
        raise RuntimeError("claims table locked")

    monkeypatch.setattr(verifier_module.OwnershipResolver, "resolve_for_account", boom)
    outcome = SocialAccountVerifier(session).ingest_result(account, BIO_WITH_CODE, snapshot_id="snap-1")

    assert outcome.status == "verified"
    assert outcome.resolution_error == "claims table locked"
    session.refresh(account)
    assert account.verification_status == "VERIFIED"


def test_mark_provider_failure(session, make_account) -> None:
    account = _pending(make_account)
    verifier = SocialAccountVerifier(session)

    assert verifier.mark_provider_failure(account, "snap-1").status == "failed"
    assert verifier.mark_provider_failure(account, "snap-1").status == "ignored"
    session.refresh(account)
    assert account.verification_status == "FAILED"
    assert account.webhook_status == "FAILED"
    assert account.verification_attempts == 1


def test_refresh_status_ingests_inline_record(session, make_account, scraper_factory) -> None:
    account = _pending(make_account)
    scraper = scraper_factory(statuses={"snap-1": JobStatus(state="ready", record=BIO_WITH_CODE)})

    assert SocialAccountVerifier(session, client=scraper).refresh_status(account) == "verified"
    assert scraper.fetch_calls == []


def test_refresh_status_fetches_result_when_ready(session, make_account, scraper_factory) -> None:
    account = _pending(make_account)
    scraper = scraper_factory(
        statuses={"snap-1": JobStatus(state="ready", raw_status="ready")},
        results={"snap-1": [BIO_WITHOUT_CODE]},
    )

    assert SocialAccountVerifier(session, client=scraper).refresh_status(account) == "failed"
    assert scraper.fetch_calls == ["snap-1"]


def test_refresh_status_provider_failure_and_pending(session, make_account, scraper_factory) -> None:
    failed = _pending(make_account, snapshot_id="snap-1", code="AAA111", username="first")
    waiting = _pending(make_account, snapshot_id="snap-2", code="BBB222", username="second")
    erroring = _pending(make_account, snapshot_id="snap-3", code="CCC333", username="third")
    scraper = scraper_factory(
        statuses={
            "snap-1": JobStatus(state="failed", raw_status="failed"),
            "snap-3": ExternalProviderError(code="network_error", message="down", retryable=True),
        }
    )
    verifier = SocialAccountVerifier(session, client=scraper)

    assert verifier.refresh_status(failed) == "failed"
    assert verifier.refresh_status(waiting) == "pending"
    assert verifier.refresh_status(erroring) == "pending"
    session.refresh(erroring)
    assert erroring.verification_status == "PENDING"


def test_refresh_status_skips_settled_accounts(session, make_account, scraper_factory) -> None:
    account = make_account(status="VERIFIED")
    scraper = scraper_factory()
    assert SocialAccountVerifier(session, client=scraper).refresh_status(account) == "ignored"
    assert scraper.status_calls == []


def test_get_account_missing(session) -> None:
    with pytest.raises(AccountNotFound):
        SocialAccountVerifier(session).get_account(uuid4())
