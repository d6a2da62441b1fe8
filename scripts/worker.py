#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os

from rq import SimpleWorker, Worker

from db.session import engine
from pipeline.queue import get_queue, get_redis


def main() -> None:
    parser = ArgumentParser(description="Start RQ worker for reconcile and ownership jobs")
    parser.add_argument("--queue", action="append", dest="queues", help="Queue name (repeatable)")
    parser.add_argument("--burst", action="store_true", help="Process queued jobs and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if hasattr(os, "register_at_fork"):
        os.register_at_fork(after_in_child=lambda: engine.dispose())

    queues = [get_queue(name) for name in (args.queues or ["default"])]
    worker_cls = SimpleWorker if os.getenv("RQ_SIMPLE_WORKER", "1") == "1" else Worker
    worker = worker_cls(queues, connection=get_redis())
    print(f"[worker] queues={','.join(q.name for q in queues)} burst={args.burst}")
    worker.work(with_scheduler=False, burst=args.burst)


if __name__ == "__main__":
    main()
