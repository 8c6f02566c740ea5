"""Uvicorn startup for the kgrag engine."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence

import uvicorn

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8742
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kgrag-engine",
        description="Serve kgrag search, ask and indexing over HTTP",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Bind host (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default: {DEFAULT_PORT})")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="info")
    parser.add_argument(
        "--service",
        action="store_true",
        help="Expose the engine to other hosts: binds 0.0.0.0, enables CORS and API keys",
    )
    parser.add_argument("--api-key", default=None, help="Key clients must send (service mode)")
    parser.add_argument("--cors-origins", default=None, help="Comma-separated CORS origins (default: *)")
    return parser


def apply_service_env(args: argparse.Namespace) -> str:
    """Export service options for create_app() and return the bind host.

    uvicorn builds the app from a factory string, so options reach it
    through KGRAG_* environment variables rather than arguments.
    """
    if not args.service:
        return args.host

    os.environ["KGRAG_SERVICE_MODE"] = "1"
    if args.api_key:
        os.environ["KGRAG_API_KEY"] = args.api_key
    if args.cors_origins:
        os.environ["KGRAG_CORS_ORIGINS"] = args.cors_origins
    return "0.0.0.0" if args.host == DEFAULT_HOST else args.host


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    host = apply_service_env(args)
    uvicorn.run(
        "kgrag_engine.app:create_app",
        factory=True,
        host=host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
