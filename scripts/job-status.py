#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser

from sqlalchemy import desc, func, select

from db.models import Job
from db.session import SessionLocal


def main() -> None:
    parser = ArgumentParser(description="Show recent reconcile/ownership job statuses")
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--type", dest="job_type", choices=["reconcile_verifications", "resolve_ownership"])
    parser.add_argument("--summary", action="store_true")
    parser.add_argument("--failed", action="store_true", help="Show failed jobs with error payload")
    args = parser.parse_args()

    session = SessionLocal()
    try:
        if args.summary:
            stmt = select(Job.job_type, Job.status, func.count()).group_by(Job.job_type, Job.status)
            for job_type, status, count in session.execute(stmt).all():
                print(f"[summary] {job_type}/{status}: {count}")
            return
        stmt = select(Job)
        if args.job_type:
            stmt = stmt.where(Job.job_type == args.job_type)
        if args.failed:
            stmt = stmt.where(Job.status == "failed")
        stmt = stmt.order_by(desc(Job.created_at)).limit(args.limit)
        for job in session.execute(stmt).scalars().all():
            payload = job.payload or {}
            print(
                f"[job] id={job.id} kind={job.job_type} status={job.status} rq_id={payload.get('rq_id')}"
            )
            if job.result:
                print(f"[job] result={job.result}")
            if args.failed and job.error_payload:
                print(f"[job] error={job.error_payload}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
