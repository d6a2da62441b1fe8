import os
from datetime import UTC, datetime
from uuid import UUID

from redis import Redis
from rq import Queue

from db.models import Job, SocialAccount
from db.session import SessionLocal
from pipeline.jobs import (
    reconcile_job,
    resolve_ownership_job,
    rq_on_failure,
    rq_on_success,
)


def _redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def _timeout_seconds() -> int:
    return int(os.getenv("RQ_JOB_TIMEOUT", "120"))


def get_redis() -> Redis:
    return Redis.from_url(_redis_url())


def get_queue(name: str = "default") -> Queue:
    return Queue(name, connection=get_redis())


def _enqueue(session, job_type: str, payload: dict, func, *args) -> dict:
    db_job = Job(
        job_type=job_type,
        status="queued",
        payload=payload,
        queued_at=datetime.now(UTC),
    )
    session.add(db_job)
    session.commit()
    session.refresh(db_job)

    queue = get_queue()
    rq_job = queue.enqueue(
        func,
        str(db_job.id),
        *args,
        job_timeout=_timeout_seconds(),
        on_failure=rq_on_failure,
        on_success=rq_on_success,
    )
    job_payload = dict(db_job.payload or {})
    job_payload["rq_id"] = rq_job.id
    db_job.payload = job_payload
    session.commit()

    return {"job_id": db_job.id, "rq_id": rq_job.id, "job_type": job_type}


def enqueue_reconcile(limit: int | None = None) -> dict:
    session = SessionLocal()
    try:
        return _enqueue(session, "reconcile_verifications", {"limit": limit}, reconcile_job, limit)
    finally:
        session.close()


def enqueue_ownership_resolution(account_id: str) -> dict:
    session = SessionLocal()
    try:
        account = session.get(SocialAccount, UUID(str(account_id)))
        if account is None:
            raise RuntimeError(f"Social account not found: {account_id}")
        return _enqueue(
            session,
            "resolve_ownership",
            {"account_id": str(account.id)},
            resolve_ownership_job,
            str(account.id),
        )
    finally:
        session.close()
