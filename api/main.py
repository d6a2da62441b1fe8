from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from os import getenv
from typing import Any, List, Literal, Optional
from uuid import UUID

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy import and_, desc, select, text

from db.models import ContestSubmission, Job, SocialAccount, VideoOwnershipClaim
from db.session import SessionLocal
from ownership.assets import (
    NewAsset,
    PersistenceError,
    RawVideoAssetStore,
    check_video_ownership,
)
from ownership.claims import ClaimRegistry
from ownership.fingerprint import PLATFORMS, detect_platform, fingerprint
from ownership.matching import resolve_account_ownership
from storage.objects import UploadError
from verification.accounts import (
    AccountAlreadyLinked,
    AccountNotFound,
    AccountOwnedElsewhere,
    AlreadyVerified,
    link_account,
    parse_profile_url,
)
from verification.payloads import snapshot_id_from_webhook, unwrap_record
from verification.provider import ExternalProviderError
from verification.reconciler import VerificationReconciler
from verification.verifier import SocialAccountVerifier

logger = logging.getLogger(__name__)

app = FastAPI(title="ClipVerify API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _paginate(limit: int, offset: int) -> tuple[int, int]:
    limit = max(1, min(limit, 200))
    offset = max(0, offset)
    return limit, offset


def _require_operator(x_operator_token: str | None = Header(default=None)) -> None:
    expected = getenv("OPERATOR_TOKEN", "")
    if not expected:
        if getenv("ALLOW_OPS_WITHOUT_TOKEN", "0") == "1":
            return
        raise HTTPException(status_code=503, detail="operator_token_missing")
    if x_operator_token != expected:
        raise HTTPException(status_code=401, detail="operator_token_required")


def _current_user(x_user_id: str | None = Header(default=None)) -> UUID:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="user_id_required")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="user_id_invalid")


def _account_row(account: SocialAccount) -> dict:
    return jsonable_encoder(
        {
            "id": account.id,
            "user_id": account.user_id,
            "platform": account.platform,
            "profile_url": account.profile_url,
            "username": account.username,
            "verification_code": account.verification_code,
            "verification_status": account.verification_status,
            "webhook_status": account.webhook_status,
            "snapshot_id": account.snapshot_id,
            "verification_attempts": account.verification_attempts,
            "last_verification_attempt_at": account.last_verification_attempt_at,
            "verified_at": account.verified_at,
            "created_at": account.created_at,
        }
    )


def _job_row(job: Job) -> dict:
    return jsonable_encoder(
        {
            "id": job.id,
            "job_type": job.job_type,
            "status": job.status,
            "payload": job.payload,
            "result": job.result,
            "error_payload": job.error_payload,
            "queued_at": job.queued_at,
            "started_at": job.started_at,
            "finished_at": job.finished_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }
    )


def _claim_row(claim: VideoOwnershipClaim) -> dict:
    return jsonable_encoder(
        {
            "video_fingerprint": claim.video_fingerprint,
            "platform": claim.platform,
            "status": claim.status,
            "current_owner_asset_id": claim.current_owner_asset_id,
            "current_owner_user_id": claim.current_owner_user_id,
            "current_owner_social_account_id": claim.current_owner_social_account_id,
            "contested_count": claim.contested_count,
            "last_contested_at": claim.last_contested_at,
            "updated_at": claim.updated_at,
        }
    )


def _get_owned_account(session, account_id: UUID, user_id: UUID | None) -> SocialAccount:
    account = session.get(SocialAccount, account_id)
    if account is None or (user_id is not None and account.user_id != user_id):
        raise HTTPException(status_code=404, detail="social_account_not_found")
    return account


class LinkAccountRequest(BaseModel):
    profile_url: str = Field(min_length=3)
    platform: Optional[Literal["tiktok", "instagram", "youtube"]] = Field(default=None)
    username: Optional[str] = Field(default=None)


class ReconcileRequest(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)


class CleanupRequest(BaseModel):
    older_min: int = Field(default=30, ge=1, le=24 * 60)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/settings")
def get_settings() -> dict:
    def flag(name: str, default: str = "") -> str:
        return getenv(name, default)

    return {
        "database_url_set": flag("DATABASE_URL", "") != "",
        "redis_url": flag("REDIS_URL", ""),
        "rq_job_timeout": flag("RQ_JOB_TIMEOUT", "120"),
        "operator_guard": flag("OPERATOR_TOKEN", "") != "",
        "app_base_url": flag("APP_BASE_URL", "http://localhost:8000"),
        "webhook_secret_set": flag("PROFILE_WEBHOOK_SECRET", "") != "",
        "scraper_base_url": flag("BRIGHT_DATA_BASE_URL", "https://api.brightdata.com"),
        "scraper_api_key_set": bool(flag("BRIGHT_DATA_API_KEY") or flag("BRIGHTDATA_API_KEY")),
        "scraper_datasets": {
            "tiktok": flag("BRIGHT_DATA_TIKTOK_PROFILE_SCRAPER_ID", "") != "",
            "instagram": flag("BRIGHT_DATA_INSTAGRAM_PROFILE_SCRAPER_ID", "") != "",
            "youtube": flag("BRIGHT_DATA_YOUTUBE_PROFILE_SCRAPER_ID", "") != "",
        },
        "storage_base_dir": flag("STORAGE_BASE_DIR", "out/storage"),
        "raw_video_bucket": flag("RAW_VIDEO_BUCKET", "contest-videos"),
        "reconcile_batch_size": flag("RECONCILE_BATCH_SIZE", "50"),
    }


@app.post("/social-accounts")
def create_social_account(req: LinkAccountRequest, user_id: UUID = Depends(_current_user)) -> dict:
    platform, _ = parse_profile_url(req.profile_url)
    platform = req.platform or platform
    if platform is None:
        raise HTTPException(status_code=400, detail="unsupported_platform")
    session = SessionLocal()
    try:
        account = link_account(
            session,
            user_id=user_id,
            platform=platform,
            profile_url=req.profile_url,
            username=req.username,
        )
        return _account_row(account)
    except AccountAlreadyLinked:
        session.rollback()
        raise HTTPException(status_code=400, detail="account_already_linked")
    except AccountOwnedElsewhere:
        session.rollback()
        raise HTTPException(status_code=409, detail="account_owned_elsewhere")
    except ValueError:
        session.rollback()
        raise HTTPException(status_code=400, detail="invalid_profile_url")
    finally:
        session.close()


@app.get("/social-accounts")
def list_social_accounts(
    platform: Optional[str] = None,
    user_id: UUID = Depends(_current_user),
) -> List[dict]:
    session = SessionLocal()
    try:
        stmt = select(SocialAccount).where(SocialAccount.user_id == user_id)
        if platform:
            stmt = stmt.where(SocialAccount.platform == platform)
        rows = session.execute(stmt.order_by(desc(SocialAccount.created_at))).scalars().all()
        return [_account_row(row) for row in rows]
    finally:
        session.close()


@app.post("/social-accounts/{account_id}/verify")
def verify_social_account(account_id: UUID, user_id: UUID = Depends(_current_user)) -> dict:
    session = SessionLocal()
    try:
        account = _get_owned_account(session, account_id, user_id)
        verifier = SocialAccountVerifier(session)
        request = verifier.request_verification(account)
        return {
            "account_id": str(account_id),
            "verification_code": request.verification_code,
            "snapshot_id": request.snapshot_id,
        }
    except AlreadyVerified:
        session.rollback()
        raise HTTPException(status_code=409, detail="already_verified")
    except ExternalProviderError as exc:
        session.rollback()
        if exc.misconfigured:
            raise HTTPException(status_code=503, detail="provider_misconfigured")
        logger.warning("[api] provider trigger failed account_id=%s err=%s", account_id, exc)
        raise HTTPException(status_code=502, detail="provider_call_failed")
    finally:
        session.close()


@app.get("/social-accounts/{account_id}/verification-status")
def get_verification_status(account_id: UUID, user_id: UUID = Depends(_current_user)) -> dict:
    session = SessionLocal()
    try:
        account = _get_owned_account(session, account_id, user_id)
        refreshed = None
        if account.webhook_status == "PENDING" and account.verification_status == "PENDING":
            try:
                refreshed = SocialAccountVerifier(session).refresh_status(account, source="ui")
            except ExternalProviderError as exc:
                # unconfigured provider: report stored state only
                logger.warning("[api] status refresh skipped account_id=%s err=%s", account_id, exc)
            account = _get_owned_account(session, account_id, user_id)
        payload = _account_row(account)
        payload["refreshed"] = refreshed
        return payload
    finally:
        session.close()


def handle_profile_webhook(payload: Any, headers: dict[str, str]) -> dict:
    snapshot_id = snapshot_id_from_webhook(headers, payload)
    if not snapshot_id:
        raise HTTPException(status_code=400, detail="snapshot_id_missing")
    record, status = unwrap_record(payload)

    session = SessionLocal()
    try:
        account = session.execute(
            select(SocialAccount).where(SocialAccount.snapshot_id == snapshot_id)
        ).scalar_one_or_none()
        # a superseded or unknown job id has no account; retries overwrite snapshot_id
        if account is None:
            raise HTTPException(status_code=404, detail="social_account_not_found")

        verifier = SocialAccountVerifier(session)
        if record is not None:
            outcome = verifier.ingest_result(
                account,
                record,
                snapshot_id=snapshot_id,
                source="webhook",
            ).status
        elif status in {"failed", "error"}:
            outcome = verifier.mark_provider_failure(account, snapshot_id, source="webhook").status
        elif status in {"ready", "completed", "done", "success"}:
            try:
                outcome = verifier.refresh_status(account, source="webhook")
            except ExternalProviderError as exc:
                logger.warning("[webhook] fetch skipped snapshot_id=%s err=%s", snapshot_id, exc)
                outcome = "pending"
        else:
            outcome = "pending"
        logger.info("[webhook] snapshot_id=%s outcome=%s", snapshot_id, outcome)
        return {"snapshot_id": snapshot_id, "account_id": str(account.id), "outcome": outcome}
    finally:
        session.close()


@app.post("/webhooks/profile")
def profile_webhook(
    request: Request,
    payload: Any = Body(default=None),
    x_webhook_secret: str | None = Header(default=None),
) -> dict:
    expected = getenv("PROFILE_WEBHOOK_SECRET", "")
    if expected and x_webhook_secret != expected:
        raise HTTPException(status_code=401, detail="webhook_secret_invalid")
    return handle_profile_webhook(payload, dict(request.headers))


@app.post("/raw-video-assets")
def upload_raw_video_asset(
    file: UploadFile = File(...),
    video_url: str = Form(...),
    platform: Optional[str] = Form(default=None),
    submission_type: str = Form(default="general"),
    contest_id: Optional[UUID] = Form(default=None),
    contest_submission_id: Optional[UUID] = Form(default=None),
    user_id: UUID = Depends(_current_user),
) -> dict:
    platform = platform or detect_platform(video_url)
    if platform not in PLATFORMS:
        raise HTTPException(status_code=400, detail="unsupported_platform")
    if submission_type not in {"contest", "general"}:
        raise HTTPException(status_code=400, detail="invalid_submission_type")
    if submission_type == "contest" and contest_submission_id is None:
        raise HTTPException(status_code=400, detail="contest_submission_required")

    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="file_empty")

    session = SessionLocal()
    try:
        if contest_submission_id is not None:
            submission = session.get(ContestSubmission, contest_submission_id)
            if submission is None or submission.user_id != user_id:
                raise HTTPException(status_code=404, detail="contest_submission_not_found")
            contest_id = contest_id or submission.contest_id

        check = check_video_ownership(session, video_url, user_id, platform)
        if check.status == "failed":
            raise HTTPException(status_code=409, detail="video_claimed_elsewhere")

        owner_id = check.social_account_id
        if check.status != "verified":
            match = resolve_account_ownership(
                session,
                user_id=user_id,
                platform=platform,
                video_url=video_url,
                require_verified=False,
            )
            owner_id = match.account.id if match.account is not None else None

        store = RawVideoAssetStore(session)
        stored = store.store(
            NewAsset(
                user_id=user_id,
                platform=platform,
                video_url=video_url,
                data=data,
                filename=file.filename or "video.mp4",
                content_type=file.content_type or "video/mp4",
                submission_type=submission_type,
                contest_id=contest_id,
                contest_submission_id=contest_submission_id,
                ownership_status=check.status,
                owner_social_account_id=owner_id,
                ownership_reason=check.reason,
            )
        )
        return jsonable_encoder(
            {
                "asset_id": stored.asset_id,
                "storage_path": stored.storage_path,
                "bucket": stored.bucket,
                "fingerprint": stored.fingerprint,
                "ownership_status": stored.ownership_status,
                "ownership_reason": check.reason,
            }
        )
    except UploadError as exc:
        logger.warning("[api] upload failed user_id=%s err=%s", user_id, exc)
        raise HTTPException(status_code=502, detail="upload_failed")
    except PersistenceError:
        raise HTTPException(status_code=500, detail="persistence_failed")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    finally:
        session.close()


@app.get("/ownership/check")
def ownership_check(
    video_url: str = Query(..., min_length=8),
    platform: Optional[str] = None,
    user_id: UUID = Depends(_current_user),
) -> dict:
    platform = platform or detect_platform(video_url)
    if platform not in PLATFORMS:
        raise HTTPException(status_code=400, detail="unsupported_platform")
    session = SessionLocal()
    try:
        check = check_video_ownership(session, video_url, user_id, platform)
        fp = fingerprint(platform, video_url)
        return jsonable_encoder(
            {
                "status": check.status,
                "reason": check.reason,
                "social_account_id": check.social_account_id,
                "fingerprint": fp.key,
                "fingerprint_confidence": fp.confidence,
            }
        )
    finally:
        session.close()


@app.get("/ownership/claims/{fingerprint_key:path}")
def get_ownership_claim(fingerprint_key: str) -> dict:
    session = SessionLocal()
    try:
        claim = ClaimRegistry(session).get_claim(fingerprint_key)
        if claim is None:
            raise HTTPException(status_code=404, detail="claim_not_found")
        return _claim_row(claim)
    finally:
        session.close()


@app.post("/ops/reconcile")
def ops_reconcile(
    req: ReconcileRequest | None = None,
    _guard: None = Depends(_require_operator),
) -> dict:
    limit = req.limit if req is not None else None
    try:
        summary = VerificationReconciler(SessionLocal).reconcile(limit)
    except ExternalProviderError as exc:
        if exc.misconfigured:
            raise HTTPException(status_code=503, detail="provider_misconfigured")
        raise HTTPException(status_code=502, detail="provider_call_failed")
    return summary.as_dict()


@app.post("/ops/reconcile/enqueue")
def ops_enqueue_reconcile(
    req: ReconcileRequest | None = None,
    _guard: None = Depends(_require_operator),
) -> dict:
    from pipeline.queue import enqueue_reconcile

    result = enqueue_reconcile(req.limit if req is not None else None)
    return jsonable_encoder(result)


@app.post("/ops/ownership/{account_id}/enqueue")
def ops_enqueue_ownership(account_id: UUID, _guard: None = Depends(_require_operator)) -> dict:
    from pipeline.queue import enqueue_ownership_resolution

    try:
        result = enqueue_ownership_resolution(str(account_id))
    except RuntimeError:
        raise HTTPException(status_code=404, detail="social_account_not_found")
    return jsonable_encoder(result)


@app.get("/pipeline/jobs")
def list_jobs(
    status: Optional[str] = None,
    job_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> List[dict]:
    limit, offset = _paginate(limit, offset)
    session = SessionLocal()
    try:
        stmt = select(Job)
        if status:
            stmt = stmt.where(Job.status == status)
        if job_type:
            stmt = stmt.where(Job.job_type == job_type)
        stmt = stmt.order_by(desc(Job.created_at)).limit(limit).offset(offset)
        rows = session.execute(stmt).scalars().all()
        return [_job_row(row) for row in rows]
    finally:
        session.close()


@app.post("/ops/cleanup-jobs")
def ops_cleanup_jobs(request: CleanupRequest, _guard: None = Depends(_require_operator)) -> dict:
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=request.older_min)
    session = SessionLocal()
    try:
        stmt = select(Job).where(and_(Job.status == "running", Job.updated_at < cutoff))
        jobs = session.execute(stmt).scalars().all()
        for job in jobs:
            job.status = "failed"
            job.error_payload = {"message": f"auto-cleanup: running > {request.older_min} min"}
            job.finished_at = datetime.now(timezone.utc)
            session.add(job)
        session.commit()
        return {"marked_failed": len(jobs)}
    finally:
        session.close()


@app.get("/system/status")
def system_status() -> dict:
    session = SessionLocal()
    try:
        session.execute(text("select 1"))
        db_ok = True
    except Exception:
        db_ok = False
    finally:
        session.close()
    return {"database": "ok" if db_ok else "down", "updated_at": datetime.now(timezone.utc)}
