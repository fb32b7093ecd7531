"""Whisker CLI — whisker dev / whisker serve.

Entry point for the ``whisker`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys

from whisker._errors import WhiskerError


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the whisker CLI."""
    parser = argparse.ArgumentParser(
        prog="whisker",
        description="Live server-rendered components for Chirp apps.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # whisker dev
    dev_parser = subparsers.add_parser("dev", help="Start a development server")
    dev_parser.add_argument("target", help="module:attr naming a Whisker or its app")
    dev_parser.add_argument("--host", default=None, help="Bind address")
    dev_parser.add_argument("--port", type=int, default=None, help="Bind port")

    # whisker serve
    serve_parser = subparsers.add_parser("serve", help="Run a production server")
    serve_parser.add_argument("target", help="module:attr naming a Whisker or its app")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument("--workers", type=int, default=None, help="Worker count (0=auto)")

    return parser


def _get_version() -> str:
    from whisker import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from whisker.app import dev, serve

    try:
        if args.command == "dev":
            dev(args.target, host=args.host, port=args.port)
        elif args.command == "serve":
            serve(args.target, host=args.host, port=args.port, workers=args.workers)
    except WhiskerError as exc:
        print(f"  Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
