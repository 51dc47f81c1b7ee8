"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Defaults (127.0.0.1:8080)
    python -m wirehttp

    # Custom port, every interface
    python -m wirehttp --host 0.0.0.0 --port 3000

    # Serve ./public under /assets
    python -m wirehttp --static ./public --static-prefix /assets

Settings start from the HTTP_* environment variables (ServerConfig.from_env)
and command-line flags override them.
=============================================================================
"""

import argparse
import os
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .middleware import LoggingMiddleware
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wirehttp",
        description="HTTP/1.1 server on raw sockets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m wirehttp                           # Run with defaults
  python -m wirehttp --port 3000               # Custom port
  python -m wirehttp --host 0.0.0.0            # Listen on all interfaces
  python -m wirehttp --workers 8               # 8 worker threads
  python -m wirehttp --static ./public         # Serve static files
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", default=None, help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: 8080)")

    # ─────────────────────────────────────────────────────────────────────
    # BEHAVIOUR
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Worker threads to start with (max will be 2x this)",
    )
    parser.add_argument(
        "--no-keep-alive",
        action="store_true",
        help="Close every connection after one response",
    )
    parser.add_argument("--static", "-s", default=None, help="Directory to serve static files from")
    parser.add_argument(
        "--static-prefix",
        default=None,
        help="URL prefix for static files (default: /static)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument("--version", "-v", action="version", version=f"wirehttp {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then whatever was given on the command line."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2
    if args.no_keep_alive:
        config.keep_alive = False
    if args.static is not None:
        config.static_dir = args.static
    if args.static_prefix is not None:
        config.static_url_prefix = args.static_prefix
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def hello(ctx) -> None:
    ctx.text("Hello from wirehttp\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        if config.static_dir and not os.path.isdir(config.static_dir):
            raise ValueError(f"Static directory does not exist: {config.static_dir}")
        server = HTTPServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    server.use_middleware(LoggingMiddleware(log_format=config.log_format))
    server.get("/hello")(hello)

    print(f"wirehttp {__version__} listening on http://{config.host}:{config.port}")
    if config.static_dir:
        print(f"Serving {config.static_dir} under {config.static_url_prefix}/")

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
