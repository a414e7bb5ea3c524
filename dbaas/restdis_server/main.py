"""
restdis server - Main entry point.

Runs a web server serving the Redis REST API, forwarding commands to a
running Redis instance (version 6 and above for ACL support).

Usage:
    restdis-server --addr 127.0.0.1:8080 --redis-addr localhost:6379 --api-token TOKEN
    python -m dbaas.restdis_server.main --addr :8080 --redis-addr memory

As a special case, 'memory' can be used as --redis-addr and an in-memory
store is used. It supports a subset of commands only.

Flags override the RESTDIS_* environment variables, see config.py.
"""

from __future__ import annotations

import argparse
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .backend import build_connection_factory
from .config import Settings

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INVALID_ARGS = 2


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Server settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def split_bind_addr(addr: str) -> tuple[str, int]:
    """Split HOST:PORT; an empty host listens on all interfaces.

    Raises:
        ValueError: If addr has no numeric port
    """
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address '{addr}', expected HOST:PORT")
    return host or "0.0.0.0", int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restdis-server",
        description=(
            "Run a web server that serves an Upstash-compatible Redis REST API "
            "and connects to a running Redis instance to execute commands."
        ),
    )
    parser.add_argument("-a", "--addr", help="Address for the web server to listen on (HOST:PORT)")
    parser.add_argument(
        "-r",
        "--redis-addr",
        help="Use the Redis instance running at this ADDR, or 'memory' for an in-memory store",
    )
    parser.add_argument(
        "-t",
        "--api-token",
        help="API token to accept as authorized (env: RESTDIS_API_TOKEN)",
    )
    return parser


def load_settings(argv: list[str] | None = None) -> Settings:
    """Build settings from the environment, overridden by the flags.

    Raises:
        ValueError: If the resulting settings are invalid
    """
    args = build_parser().parse_args(argv)

    overrides: dict[str, object] = {}
    if args.addr:
        host, port = split_bind_addr(args.addr)
        overrides["host"] = host
        overrides["port"] = port
    if args.redis_addr:
        overrides["redis_addr"] = args.redis_addr
    if args.api_token:
        overrides["api_token"] = args.api_token

    settings = Settings(**overrides)
    settings.validate_settings()
    return settings


def main(argv: list[str] | None = None) -> int:
    """Run the server until interrupted.

    Returns:
        Process exit code
    """
    try:
        settings = load_settings(argv)
    except ValueError as e:
        print(f"invalid arguments: {e}", file=sys.stderr)
        return EXIT_INVALID_ARGS

    setup_logging(settings)
    settings.log_config()

    app = create_app(settings, build_connection_factory(settings))

    logger.info(f"listening on {settings.bind_address}...")
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    except Exception as e:
        logger.error(f"web server error: {e}", exc_info=True)
        return EXIT_FAILURE
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
