from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.base import Base
from db.models import ContestSubmission, RawVideoAsset, SocialAccount
from ownership.fingerprint import fingerprint
from storage.objects import LocalObjectStore, StorageConfig
from verification.provider import JobStatus, ProviderConfig


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def object_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(StorageConfig(base_dir=tmp_path, bucket="contest-videos"))


@pytest.fixture()
def patched_sessions(monkeypatch, session_factory, tmp_path):
    import api.main as api_main
    import pipeline.jobs as jobs_module
    import pipeline.queue as queue_module

    monkeypatch.setattr(api_main, "SessionLocal", session_factory)
    monkeypatch.setattr(jobs_module, "SessionLocal", session_factory)
    monkeypatch.setattr(queue_module, "SessionLocal", session_factory)
    monkeypatch.setenv("STORAGE_BASE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("RAW_VIDEO_BUCKET", "contest-videos")
    return session_factory


def provider_config(**datasets: str) -> ProviderConfig:
    dataset_ids = {"tiktok": "gd_tiktok", "instagram": "gd_instagram", "youtube": "gd_youtube"}
    dataset_ids.update(datasets)
    return ProviderConfig(
        api_key="test-key",
        base_url="https://scraper.test",
        dataset_ids=dataset_ids,
        webhook_url="http://localhost:8000/webhooks/profile",
        timeout_s=5,
        retries=0,
    )


class FakeScraper:
    """Stands in for ScraperClient; statuses keyed by snapshot id."""

    def __init__(self, *, snapshot_ids=("snap-1",), statuses=None, results=None, config=None) -> None:
        self.config = config or provider_config()
        self._snapshot_ids = list(snapshot_ids)
        self.statuses = dict(statuses or {})
        self.results = dict(results or {})
        self.triggered: list[tuple[str, str]] = []
        self.status_calls: list[str] = []
        self.fetch_calls: list[str] = []

    def trigger(self, platform: str, profile_url: str) -> str:
        self.config.dataset_for(platform)
        self.triggered.append((platform, profile_url))
        return self._snapshot_ids.pop(0)

    def get_status(self, snapshot_id: str) -> JobStatus:
        self.status_calls.append(snapshot_id)
        status = self.statuses.get(snapshot_id, JobStatus(state="pending"))
        if isinstance(status, Exception):
            raise status
        return status

    def fetch_result(self, snapshot_id: str):
        self.fetch_calls.append(snapshot_id)
        return self.results.get(snapshot_id)


@pytest.fixture()
def scraper_factory():
    return FakeScraper


@pytest.fixture()
def make_account(session):
    def _make(
        *,
        user_id: UUID | None = None,
        platform: str = "tiktok",
        username: str = "creator_x",
        status: str = "UNVERIFIED",
        code: str | None = None,
        snapshot_id: str | None = None,
        webhook_status: str | None = None,
        profile_url: str | None = None,
    ) -> SocialAccount:
        if profile_url is None:
            profile_url = {
                "tiktok": f"https://www.tiktok.com/@{username}",
                "instagram": f"https://www.instagram.com/{username}",
                "youtube": f"https://www.youtube.com/@{username}",
            }[platform]
        account = SocialAccount(
            user_id=user_id or uuid4(),
            platform=platform,
            profile_url=profile_url,
            username=username,
            verification_code=code or uuid4().hex[:6].upper(),
            verification_status=status,
            snapshot_id=snapshot_id,
            webhook_status=webhook_status,
            verification_attempts=0,
        )
        session.add(account)
        session.commit()
        return account

    return _make


@pytest.fixture()
def make_submission(session):
    def _make(*, user_id: UUID, video_url: str, platform: str = "tiktok", **fields) -> ContestSubmission:
        submission = ContestSubmission(
            contest_id=fields.pop("contest_id", uuid4()),
            user_id=user_id,
            platform=platform,
            original_video_url=video_url,
            video_fingerprint=fields.pop("video_fingerprint", fingerprint(platform, video_url).key),
            **fields,
        )
        session.add(submission)
        session.commit()
        return submission

    return _make


@pytest.fixture()
def make_asset(session):
    def _make(
        *,
        user_id: UUID,
        video_url: str,
        platform: str = "tiktok",
        owner: SocialAccount | None = None,
        status: str = "pending",
        submission: ContestSubmission | None = None,
    ) -> RawVideoAsset:
        fp = fingerprint(platform, video_url)
        asset = RawVideoAsset(
            user_id=user_id,
            submission_type="contest" if submission is not None else "general",
            contest_submission_id=submission.id if submission is not None else None,
            platform=platform,
            video_url=video_url,
            video_fingerprint=fp.key,
            fingerprint_confidence=fp.confidence,
            storage_bucket="contest-videos",
            storage_path=f"general/{user_id}/{uuid4().hex}-clip.mp4",
            size_bytes=3,
            content_type="video/mp4",
            ownership_status=status,
            owner_social_account_id=owner.id if owner is not None else None,
        )
        session.add(asset)
        session.commit()
        if submission is not None:
            submission.raw_video_asset_id = asset.id
            submission.mp4_uploaded_by_user_id = user_id
            session.commit()
        return asset

    return _make


@pytest.fixture()
def provider_config_factory():
    return provider_config
