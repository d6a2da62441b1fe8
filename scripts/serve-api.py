#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os

import uvicorn


def main() -> None:
    parser = ArgumentParser(description="Serve the verification and ownership API")
    parser.add_argument("--host", default=os.getenv("API_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="Reload on source changes (development)")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    print(f"[api] host={args.host} port={args.port} reload={args.reload}")
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
