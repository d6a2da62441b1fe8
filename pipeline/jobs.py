from __future__ import annotations

from datetime import UTC, datetime
import logging
from uuid import UUID

from rq.job import Job as RQJob

from db.models import Job
from db.session import SessionLocal
from ownership.resolver import OwnershipResolver
from verification.reconciler import VerificationReconciler

logger = logging.getLogger(__name__)


def _as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _update_job(
    session,
    job_id,
    status: str,
    result: dict | None = None,
    error: str | None = None,
) -> None:
    job = session.get(Job, _as_uuid(job_id))
    if job is None:
        raise RuntimeError(f"Job not found: {job_id}")
    now = datetime.now(UTC)
    job.status = status
    if status == "running":
        job.started_at = now
    if status in {"succeeded", "failed"}:
        job.finished_at = now
    if result is not None:
        job.result = result
    if error is not None:
        job.error_payload = {"message": error}
    job.updated_at = now
    session.add(job)


def rq_on_failure(job: RQJob, connection, exc_type, exc_value, traceback) -> None:  # type: ignore[no-untyped-def]
    session = SessionLocal()
    try:
        job_id = job.args[0] if job.args else None
        if job_id is None:
            return
        _update_job(session, job_id, "failed", error=str(exc_value))
        session.commit()
    finally:
        session.close()


def rq_on_success(job: RQJob, connection, result, *args, **kwargs) -> None:  # type: ignore[no-untyped-def]
    session = SessionLocal()
    try:
        job_id = job.args[0] if job.args else None
        if job_id is None:
            return
        row = session.get(Job, _as_uuid(job_id))
        if row is not None and row.status == "succeeded":
            return
        _update_job(session, job_id, "succeeded", result=result if isinstance(result, dict) else None)
        session.commit()
    finally:
        session.close()


def reconcile_job(job_id, limit: int | None = None) -> dict:
    session = SessionLocal()
    try:
        _update_job(session, job_id, "running")
        session.commit()

        summary = VerificationReconciler(SessionLocal).reconcile(limit)
        result = summary.as_dict()

        _update_job(session, job_id, "succeeded", result=result)
        session.commit()
        return result
    except Exception as exc:
        session.rollback()
        _update_job(session, job_id, "failed", error=str(exc))
        session.commit()
        raise
    finally:
        session.close()


def resolve_ownership_job(job_id, account_id: str) -> dict:
    session = SessionLocal()
    try:
        _update_job(session, job_id, "running")
        session.commit()

        summary = OwnershipResolver(session).resolve_for_account(_as_uuid(account_id))
        result = summary.as_dict()

        _update_job(session, job_id, "succeeded", result=result)
        session.commit()
        logger.info("[jobs] resolve_ownership account_id=%s promoted=%s", account_id, len(summary.promoted))
        return result
    except Exception as exc:
        session.rollback()
        _update_job(session, job_id, "failed", error=str(exc))
        session.commit()
        raise
    finally:
        session.close()
