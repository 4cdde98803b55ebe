"""
Launch the HTTP API server.
Usage: token-aggregator api [--host 0.0.0.0] [--port 3000]
"""

from __future__ import annotations

import argparse
from typing import List, Optional

import uvicorn

from .. import config
from ..logging_setup import setup_logger


def main(argv: Optional[List[str]] = None) -> int:
    host, port = config.api_bind()
    parser = argparse.ArgumentParser(prog="token-aggregator api", description="Launch the token API")
    parser.add_argument("--host", default=host, help=f"Bind address (default: {host})")
    parser.add_argument("--port", type=int, default=port, help=f"Port (default: {port})")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    setup_logger(level=args.log_level)
    uvicorn.run("token_aggregator.api:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
