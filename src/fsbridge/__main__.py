"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    python -m fsbridge [options]
    fsbridge [options]

With no options and no FSBRIDGE_* variables the bridge runs with its
defaults: loopback, first free port in 1025-65534, path protocol,
filesystem root.

Precedence: command-line flag > environment variable > default.

Exit status:
    1   no port could be bound, or the configuration is invalid
    0   stopped by SIGINT/SIGTERM

=============================================================================
"""

import argparse
import dataclasses
import sys
from typing import List, Optional

from . import __version__
from .config import FRAMINGS, PROTOCOLS, ServerConfig
from .core import NoPortAvailableError
from .server import FileBridgeServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsbridge",
        description="Loopback-only bridge that reads and writes host files over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fsbridge                           # defaults, prints the URL
  python -m fsbridge --root /srv/share         # confine paths to a directory
  python -m fsbridge --protocol envelope       # JSON envelope requests
  python -m fsbridge --port-start 8000 --port-end 8100
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--port-start",
        type=int,
        help="First port to try (default: 1025)"
    )
    parser.add_argument(
        "--port-end",
        type=int,
        help="Last port to try (default: 65534)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds allowed to read a request and for each send, 0 for none (default: 30)"
    )
    parser.add_argument(
        "--framing",
        choices=FRAMINGS,
        help="How the end of a request is detected (default: content-length)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--root",
        help="Directory request paths resolve against (default: filesystem root)"
    )
    parser.add_argument(
        "--protocol",
        choices=PROTOCOLS,
        help="Wire protocol (default: path)"
    )
    parser.add_argument(
        "--serialize-paths",
        action="store_true",
        default=None,
        help="Serialize concurrent operations on the same file"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Maximum worker threads (default: 64)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"fsbridge {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment-derived config with any given flags applied on top."""
    config = ServerConfig.from_env()

    overrides = {
        "root_dir": args.root,
        "protocol": args.protocol,
        "port_range_start": args.port_start,
        "port_range_end": args.port_end,
        "framing": args.framing,
        "serialize_paths": args.serialize_paths,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    overrides = {name: value for name, value in overrides.items() if value is not None}

    if args.workers is not None:
        overrides["max_workers"] = args.workers
        overrides["min_workers"] = min(config.min_workers, args.workers)
    # Applied after the filter: --timeout 0 means no timeout, i.e. None.
    if args.timeout is not None:
        overrides["timeout"] = args.timeout or None

    return dataclasses.replace(config, **overrides)


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    try:
        server = FileBridgeServer(config_from_args(args))
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        server.run()
    except NoPortAvailableError:
        print("ERROR: No server ports available", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
