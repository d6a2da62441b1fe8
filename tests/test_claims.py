from __future__ import annotations

from uuid import uuid4

import pytest

from ownership.claims import ClaimRegistry

FP = "tiktok:7300000000000000001"


def _claim(registry: ClaimRegistry, status: str, *, account_id=None, exclusive: bool = False) -> bool:
    return registry.upsert_claim(FP, "tiktok", uuid4(), uuid4(), account_id, status, exclusive=exclusive)


def test_pending_creates_row(session) -> None:
    registry = ClaimRegistry(session)
    assert _claim(registry, "pending")
    claim = registry.get_claim(FP)
    assert claim.status == "pending"
    assert claim.current_owner_social_account_id is None
    assert claim.contested_count == 0


def test_pending_never_changes_claimed_or_contested(session) -> None:
    registry = ClaimRegistry(session)
    owner = uuid4()
    _claim(registry, "claimed", account_id=owner)
    assert not _claim(registry, "pending")
    assert registry.get_claim(FP).status == "claimed"
    assert registry.get_claim(FP).current_owner_social_account_id == owner

    other = "tiktok:7300000000000000002"
    registry.upsert_claim(other, "tiktok", None, None, None, "contested")
    assert not registry.upsert_claim(other, "tiktok", None, None, None, "pending")
    assert registry.get_claim(other).status == "contested"


def test_pending_promotes_unclaimed(session) -> None:
    registry = ClaimRegistry(session)
    _claim(registry, "unclaimed")
    assert _claim(registry, "pending")
    assert registry.get_claim(FP).status == "pending"


def test_unclaimed_never_touches_existing_row(session) -> None:
    registry = ClaimRegistry(session)
    _claim(registry, "pending")
    assert not _claim(registry, "unclaimed")
    assert registry.get_claim(FP).status == "pending"


def test_contested_bumps_counter_without_demoting_claimed(session) -> None:
    registry = ClaimRegistry(session)
    owner = uuid4()
    _claim(registry, "claimed", account_id=owner)
    assert _claim(registry, "contested")
    assert _claim(registry, "contested")

    claim = registry.get_claim(FP)
    assert claim.status == "claimed"
    assert claim.contested_count == 2
    assert claim.last_contested_at is not None
    assert claim.current_owner_social_account_id == owner


def test_contested_on_pending_row(session) -> None:
    registry = ClaimRegistry(session)
    _claim(registry, "pending")
    _claim(registry, "contested")
    claim = registry.get_claim(FP)
    assert claim.status == "contested"
    assert claim.contested_count == 1


def test_claimed_is_last_writer_wins_without_exclusive(session) -> None:
    registry = ClaimRegistry(session)
    first, second = uuid4(), uuid4()
    _claim(registry, "claimed", account_id=first)
    assert _claim(registry, "claimed", account_id=second)
    assert registry.get_claim(FP).current_owner_social_account_id == second


def test_exclusive_claim_refuses_other_holder(session) -> None:
    registry = ClaimRegistry(session)
    holder, challenger = uuid4(), uuid4()
    assert _claim(registry, "claimed", account_id=holder, exclusive=True)
    assert not _claim(registry, "claimed", account_id=challenger, exclusive=True)
    assert registry.get_claim(FP).current_owner_social_account_id == holder

    # the holder may re-assert its own claim
    assert _claim(registry, "claimed", account_id=holder, exclusive=True)


def test_exclusive_claim_takes_pending_row(session) -> None:
    registry = ClaimRegistry(session)
    _claim(registry, "pending")
    owner = uuid4()
    assert _claim(registry, "claimed", account_id=owner, exclusive=True)
    claim = registry.get_claim(FP)
    assert claim.status == "claimed"
    assert claim.current_owner_social_account_id == owner


def test_invalid_status_is_rejected(session) -> None:
    with pytest.raises(ValueError):
        _claim(ClaimRegistry(session), "owned")


def test_get_claim_missing(session) -> None:
    assert ClaimRegistry(session).get_claim("tiktok:missing") is None
