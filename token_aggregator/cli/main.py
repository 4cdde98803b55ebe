"""
Top-level CLI dispatcher: token-aggregator <command> [args...].
Each command lives in its own module with a main(argv) entrypoint.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .._version import __version__

_COMMANDS = {
    "run": "Run the aggregator with periodic fetchers (and optional Redis intake)",
    "api": "Serve the /discover and /health HTTP API",
    "discover": "Print the top tokens for a metric from the store",
    "ingest": "Push a JSON file of intake messages through one window",
}


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(
        prog="token-aggregator",
        description="Token market-metrics aggregation pipeline",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="command")
    for name, help_text in _COMMANDS.items():
        subparsers.add_parser(name, help=help_text, add_help=False)

    args, rest = parser.parse_known_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    cmd = args.command
    if cmd == "run":
        from . import run as mod
    elif cmd == "api":
        from . import api as mod
    elif cmd == "discover":
        from . import discover as mod
    else:
        from . import ingest as mod
    return mod.main(rest)


if __name__ == "__main__":
    raise SystemExit(main())
