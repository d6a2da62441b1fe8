#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, select

from db.models import Job
from db.session import SessionLocal


def main() -> None:
    parser = ArgumentParser(description="Mark reconcile/ownership jobs stuck in running as failed")
    parser.add_argument("--older-min", type=int, default=30)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=args.older_min)
    session = SessionLocal()
    try:
        stmt = select(Job).where(and_(Job.status == "running", Job.updated_at < cutoff))
        jobs = session.execute(stmt).scalars().all()
        for job in jobs:
            print(f"[cleanup] job id={job.id} kind={job.job_type} started_at={job.started_at}")
            if args.dry_run:
                continue
            job.status = "failed"
            job.error_payload = {"message": f"auto-cleanup: running > {args.older_min} min"}
            job.finished_at = now
            session.add(job)
        if args.dry_run:
            print(f"[cleanup] dry-run: {len(jobs)} job(s) would be marked failed")
            return
        session.commit()
        print(f"[cleanup] marked {len(jobs)} job(s) as failed")
    finally:
        session.close()


if __name__ == "__main__":
    main()
