#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os
from uuid import UUID

from db.session import SessionLocal
from ownership.resolver import OwnershipResolver


def main() -> None:
    parser = ArgumentParser(description="Re-run ownership resolution for a social account")
    parser.add_argument("account_id", type=UUID)
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session = SessionLocal()
    try:
        summary = OwnershipResolver(session).resolve_for_account(args.account_id)
        print(f"[resolve] account_id={summary.account_id}")
        print(f"[resolve] associated assets={summary.associated_assets} submissions={summary.associated_submissions}")
        print(f"[resolve] promoted={len(summary.promoted)} lost={len(summary.lost)}")
        print(
            f"[resolve] disqualified assets={len(summary.disqualified_assets)} "
            f"submissions={len(summary.disqualified_submissions)} contested={len(summary.contested_assets)}"
        )
    finally:
        session.close()


if __name__ == "__main__":
    main()
