#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser

from sqlalchemy import desc, func, select

from db.models import RawVideoAsset, SocialAccount, VideoOwnershipClaim
from db.session import SessionLocal


def main() -> None:
    parser = ArgumentParser(description="Summarize account verification and ownership state")
    parser.add_argument("--pending", action="store_true", help="List accounts waiting on the scraper")
    parser.add_argument("--limit", type=int, default=20)
    args = parser.parse_args()

    session = SessionLocal()
    try:
        stmt = (
            select(SocialAccount.platform, SocialAccount.verification_status, func.count())
            .group_by(SocialAccount.platform, SocialAccount.verification_status)
            .order_by(SocialAccount.platform)
        )
        for platform, status, count in session.execute(stmt).all():
            print(f"[accounts] {platform}/{status}: {count}")

        for status, count in session.execute(
            select(RawVideoAsset.ownership_status, func.count()).group_by(RawVideoAsset.ownership_status)
        ).all():
            print(f"[assets] {status}: {count}")

        for status, count in session.execute(
            select(VideoOwnershipClaim.status, func.count()).group_by(VideoOwnershipClaim.status)
        ).all():
            print(f"[claims] {status}: {count}")

        if args.pending:
            pending = session.execute(
                select(SocialAccount)
                .where(
                    SocialAccount.webhook_status == "PENDING",
                    SocialAccount.verification_status == "PENDING",
                )
                .order_by(desc(SocialAccount.last_verification_attempt_at))
                .limit(args.limit)
            ).scalars().all()
            for account in pending:
                print(
                    f"[pending] id={account.id} platform={account.platform} "
                    f"snapshot_id={account.snapshot_id} since={account.last_verification_attempt_at}"
                )
    finally:
        session.close()


if __name__ == "__main__":
    main()
