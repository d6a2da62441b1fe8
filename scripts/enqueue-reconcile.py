#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser

from pipeline.queue import enqueue_ownership_resolution, enqueue_reconcile
from verification.reconciler import default_batch_size


def main() -> None:
    parser = ArgumentParser(description="Enqueue a reconcile batch (or an ownership resolution) on RQ")
    parser.add_argument("--limit", type=int, default=default_batch_size())
    parser.add_argument("--resolve-account", help="Enqueue ownership resolution for this social account id instead")
    args = parser.parse_args()

    if args.resolve_account:
        result = enqueue_ownership_resolution(args.resolve_account)
    else:
        result = enqueue_reconcile(args.limit)
    print("[enqueue] job_type:", result["job_type"])
    print("[enqueue] job_id:", result["job_id"])
    print("[enqueue] rq_id:", result["rq_id"])


if __name__ == "__main__":
    main()
