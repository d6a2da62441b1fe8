from __future__ import annotations

from db.models import SocialAccount
from verification.provider import JobStatus
from verification.reconciler import VerificationReconciler, default_batch_size


def _pending(make_account, snapshot_id: str, code: str, username: str) -> SocialAccount:
    return make_account(
        code=code,
        username=username,
        status="PENDING",
        webhook_status="PENDING",
        snapshot_id=snapshot_id,
    )


def test_no_eligible_accounts_returns_zero_summary(session_factory, make_account) -> None:
    make_account(status="UNVERIFIED")
    make_account(status="VERIFIED", username="done")

    summary = VerificationReconciler(session_factory).reconcile()

    assert summary.as_dict() == {"processed": 0, "verified": 0, "failed": 0, "stillPending": 0, "errors": 0}


def test_reconcile_settles_each_account_independently(session_factory, make_account, scraper_factory) -> None:
    verified = _pending(make_account, "snap-1", "AAA111", "first")
    failed = _pending(make_account, "snap-2", "BBB222", "second")
    waiting = _pending(make_account, "snap-3", "CCC333", "third")
    scraper = scraper_factory(
        statuses={
            "snap-1": JobStatus(state="ready", record={"signature": "code AAA111"}),
            "snap-2": JobStatus(state="ready", record={"signature": "nothing"}),
        }
    )

    summary = VerificationReconciler(session_factory, client=scraper).reconcile(10)

    assert summary.as_dict() == {"processed": 2, "verified": 1, "failed": 1, "stillPending": 1, "errors": 0}
    assert sorted(scraper.status_calls) == ["snap-1", "snap-2", "snap-3"]

    check = session_factory()
    try:
        assert check.get(SocialAccount, verified.id).verification_status == "VERIFIED"
        assert check.get(SocialAccount, failed.id).verification_status == "FAILED"
        assert check.get(SocialAccount, waiting.id).verification_status == "PENDING"
    finally:
        check.close()


def test_one_bad_record_does_not_stop_the_batch(session_factory, make_account, scraper_factory) -> None:
    _pending(make_account, "snap-1", "AAA111", "first")
    _pending(make_account, "snap-2", "BBB222", "second")
    scraper = scraper_factory(
        statuses={
            "snap-1": RuntimeError("unexpected payload"),
            "snap-2": JobStatus(state="failed", raw_status="failed"),
        }
    )

    summary = VerificationReconciler(session_factory, client=scraper).reconcile()

    assert summary.errors == 1
    assert summary.failed == 1
    assert summary.processed == 1


def test_batch_size_is_bounded(session_factory, make_account, scraper_factory) -> None:
    for index in range(3):
        _pending(make_account, f"snap-{index}", f"CODE0{index}", f"user{index}")
    scraper = scraper_factory()

    summary = VerificationReconciler(session_factory, client=scraper).reconcile(2)

    assert summary.still_pending == 2
    assert len(scraper.status_calls) == 2


def test_default_batch_size_from_env(monkeypatch) -> None:
    monkeypatch.setenv("RECONCILE_BATCH_SIZE", "7")
    assert default_batch_size() == 7
    monkeypatch.delenv("RECONCILE_BATCH_SIZE")
    assert default_batch_size() == 50
