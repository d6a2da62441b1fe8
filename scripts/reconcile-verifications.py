#!/usr/bin/env python3
"""Run one reconcile batch inline. Intended as the cron entry point."""
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os
import sys

from db.session import SessionLocal
from verification.provider import ExternalProviderError
from verification.reconciler import VerificationReconciler, default_batch_size


def main() -> None:
    parser = ArgumentParser(description="Poll the scraper for pending account verifications")
    parser.add_argument("--limit", type=int, default=default_batch_size())
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        summary = VerificationReconciler(SessionLocal).reconcile(args.limit)
    except ExternalProviderError as exc:
        print(f"[reconcile] provider error: {exc}")
        sys.exit(2)
    result = summary.as_dict()
    print(
        "[reconcile] "
        + " ".join(f"{key}={value}" for key, value in result.items())
    )
    if summary.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
