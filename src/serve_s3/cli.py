"""``serve-s3`` command: run the configured routes under uvicorn."""

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

import uvicorn
from fastapi import FastAPI

from serve_s3.config import ServeS3Config, load_config
from serve_s3.logging_config import LOG_FORMATS, configure_logging
from serve_s3.server import create_app

logger = logging.getLogger("serve_s3")

# CLI flag (argparse dest) -> ServerConfig field
_SERVER_OVERRIDES = {
    "host": "host",
    "port": "port",
    "log_level": "log_level",
    "log_format": "log_format",
    "shutdown_timeout": "shutdown_timeout",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments (``sys.argv[1:]`` by default)."""
    parser = argparse.ArgumentParser(
        prog="serve-s3",
        description="Serve, upload and delete S3 objects over HTTP routes",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("serve-s3.yaml"),
        help="YAML file declaring the server, storage and routes (default: serve-s3.yaml)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the config and every route, then exit without serving",
    )

    server = parser.add_argument_group("server overrides")
    server.add_argument("--host", type=str, default=None, help="Bind address")
    server.add_argument("--port", type=int, default=None, help="Listen port")
    server.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: INFO)",
    )
    server.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=LOG_FORMATS,
        help="'text' or 'json' (default: text)",
    )
    server.add_argument(
        "--shutdown-timeout",
        type=int,
        default=None,
        help="Seconds to wait for in-flight requests on shutdown (default: 30)",
    )
    return parser.parse_args(argv)


def apply_overrides(config: ServeS3Config, args: argparse.Namespace) -> None:
    """Copy the server flags that were given onto ``config.server``."""
    for dest, field in _SERVER_OVERRIDES.items():
        value = getattr(args, dest)
        if value is not None:
            setattr(config.server, field, value)


def _fail(message: str, *args: object) -> NoReturn:
    logger.error(message, *args)
    sys.exit(1)


def build_app(args: argparse.Namespace) -> tuple[ServeS3Config, FastAPI]:
    """Load the config, apply the flags, set up logging and build the app.

    Exits with status 1 when the config cannot be loaded or a route is invalid.
    """
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        _fail("Config file not found: %s", args.config)
    except Exception as exc:
        _fail("Failed to load config %s: %s", args.config, exc)

    apply_overrides(config, args)
    try:
        configure_logging(level=config.server.log_level, fmt=config.server.log_format)
    except ValueError as exc:
        _fail("Invalid server settings: %s", exc)

    try:
        app = create_app(config)
    except ValueError as exc:
        # pydantic.ValidationError is a ValueError: bad route options land here
        _fail("Invalid configuration: %s", exc)
    return config, app


def main(argv: list[str] | None = None) -> None:
    """Entry point of the ``serve-s3`` script."""
    args = parse_args(argv)

    # stderr logging until the configured handler replaces it
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    config, app = build_app(args)

    if args.check:
        logger.info("%s: %d route(s) OK", args.config, len(config.routes))
        return

    logger.info(
        "Starting serve-s3 on %s:%d (%d route(s), storage=%s)",
        config.server.host,
        config.server.port,
        len(config.routes),
        config.storage.backend,
    )

    # requests are logged by the app's own middleware
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        access_log=False,
        timeout_graceful_shutdown=config.server.shutdown_timeout,
    )


if __name__ == "__main__":
    main()
