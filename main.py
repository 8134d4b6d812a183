"""
Product Match Engine - Server Runner
====================================
Usage:
    python main.py                         # HOST/PORT env or 0.0.0.0:8000
    python main.py --port 8080 --reload    # Dev mode, single process
    python main.py --workers 4 --log-level warning

Logging is configured when the API module is imported, so every uvicorn
worker picks up LOG_LEVEL; --log-level is exported to the environment
before workers start.
"""

import os
import argparse

import uvicorn
from dotenv import load_dotenv

load_dotenv()

APP_PATH = "match_engine.api.endpoints:app"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Product Match Engine API Server")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.getenv("WEB_CONCURRENCY", "1")),
        help="Worker processes (ignored with --reload)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="DEBUG, INFO, WARNING, ERROR or CRITICAL",
    )
    return parser


def main():
    args = build_parser().parse_args()
    log_level = args.log_level.upper()
    os.environ["LOG_LEVEL"] = log_level

    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
