"""CLI entry point for partcopy."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from partcopy.config import load_config
from partcopy.logging_config import configure_logging
from partcopy.server import create_app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="partcopy",
        description="partcopy - multipart object copy service",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("partcopy.yaml"),
        help="Path to YAML configuration file (default: partcopy.yaml)",
    )
    parser.add_argument("--host", type=str, default=None, help="Host to bind (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (overrides config)")
    parser.add_argument(
        "--part-size",
        type=int,
        default=None,
        help="Part size in bytes (overrides config)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of queue workers (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Log every protocol step",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Load configuration, apply CLI overrides, and serve with uvicorn.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("partcopy")

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.part_size is not None:
        config.copy_.part_size = args.part_size
    if args.workers is not None:
        config.queue.workers = args.workers
    if args.log_level is not None:
        config.server.log_level = args.log_level
    if args.log_format is not None:
        config.server.log_format = args.log_format
    if args.debug:
        config.server.debug = True

    configure_logging(level=config.server.log_level, fmt=config.server.log_format)

    logger.info(
        "Starting partcopy on %s:%d (part_size=%d, workers=%d)",
        config.server.host,
        config.server.port,
        config.part_size,
        config.queue.workers,
    )

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
