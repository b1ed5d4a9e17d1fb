"""
Call Scoring Engine - server launcher

Usage:
    python main.py                          # http://0.0.0.0:8000
    python main.py --port 8080 --reload     # dev mode
    python main.py --timeout 600            # allow longer streamed runs
    python main.py --env-file prod.env --log-level debug

Swagger UI is served at /docs and ReDoc at /redoc.
"""

import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
APP_PATH = "call_engine.api.endpoints:app"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serve the call scoring pipeline over HTTP (SSE progress streams)"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker processes; ignored with --reload (default: 1)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Seconds before a streamed run is cut off (overrides ANALYSIS_TIMEOUT_SECONDS)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Dotenv file with model and provider settings (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Pipeline and server log level (default: info)",
    )
    return parser


def main():
    args = build_parser().parse_args()

    # Settings are read at import time, so the environment must be final
    # before uvicorn loads the app.
    load_dotenv(args.env_file)
    if args.timeout is not None:
        os.environ["ANALYSIS_TIMEOUT_SECONDS"] = str(args.timeout)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    logger = logging.getLogger("call_engine")
    logger.info(
        f"Call Scoring Engine on http://{args.host}:{args.port} "
        f"(docs at /docs, timeout {os.getenv('ANALYSIS_TIMEOUT_SECONDS', '300')}s)"
    )

    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
