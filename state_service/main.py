#!/usr/bin/env python3
"""
State Service Command Line

Usage:
    state-service                          # everything from the environment
    state-service --workers 8 --debug
    state-service --redis redis://cache:6379 --rabbitmq amqp://u:p@mq:5672
    python -m state_service --port 0       # no status listener

Flags override environment variables, which override defaults.
"""

import argparse
import asyncio
import sys
from enum import Enum

from pydantic import ValidationError

from state_service import __version__
from state_service.application.lifecycle import StateService
from state_service.core.config.settings import Settings, reload_settings
from state_service.core.exceptions import ConfigurationError, StateServiceError
from state_service.core.logging.logger import get_logger, setup_logging

logger = get_logger(__name__)


class ExitCode(Enum):
    """Process exit codes."""

    SUCCESS = 0
    STARTUP_ERROR = 1


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="state-service",
        description="Relay device state events from AMQP into Redis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  WORKERS, REDIS_URL, RABBIT_URL, PORT, LOG_LEVEL, LOG_FORMAT, DEBUG, AMQP_*
        """,
    )

    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")
    parser.add_argument("--workers", type=int, metavar="N", help="Number of consumer workers")
    parser.add_argument("--redis", metavar="URL", help="Redis URL (REDIS_URL)")
    parser.add_argument("--rabbitmq", metavar="URL", help="RabbitMQ URL (RABBIT_URL)")
    parser.add_argument("--port", type=int, metavar="PORT", help="Status listener port, 0 disables it")
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def settings_overrides(args: argparse.Namespace) -> dict:
    """Map the flags that were given onto settings field names."""
    mapping = {
        "DEBUG": args.debug,
        "WORKERS": args.workers,
        "REDIS_URL": args.redis,
        "RABBIT_URL": args.rabbitmq,
        "PORT": args.port,
        "LOG_FORMAT": args.log_format,
    }
    return {name: value for name, value in mapping.items() if value is not None}


def load_settings(args: argparse.Namespace) -> Settings:
    """
    Build settings from the environment plus command line overrides.

    Raises:
        ConfigurationError: A value failed validation
    """
    try:
        return reload_settings(**settings_overrides(args))
    except ValidationError as e:
        raise ConfigurationError.from_exception(
            e, message=f"Invalid configuration: {e}", errors=e.error_count()
        ) from e


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        setup_logging()
        logger.critical("Invalid configuration", error=e.message)
        return ExitCode.STARTUP_ERROR.value

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    service = StateService(settings)

    try:
        asyncio.run(service.run())
    except StateServiceError as e:
        logger.critical("State service failed to start", **e.to_dict())
        return ExitCode.STARTUP_ERROR.value
    except KeyboardInterrupt:
        logger.warning("Interrupted without signal handlers installed")
        return ExitCode.STARTUP_ERROR.value

    return ExitCode.SUCCESS.value


if __name__ == "__main__":
    sys.exit(main())
