#!/usr/bin/env python3
"""
DAASR - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the adaptive rate limiting engine with its metric,
alerting and broadcast ticks.

- Configuration from .env / environment, optionally a YAML file
- Handles SIGINT / SIGTERM gracefully
- Optional fixed run duration (smoke runs, demos)

============================================================
USAGE
============================================================
Direct execution:
    python app.py --log-format text

With a rules / settings file:
    python app.py --rules-file config/daasr.yaml

Environment-based configuration:
    DAASR_BASE_RATE_LIMIT=200 python app.py

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.exceptions import ConfigurationError
from core.log_config import setup_logging
from service.config import ServiceConfig
from service.engine import RateLimitingService


# ============================================================
# CLI
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daasr",
        description="DAASR adaptive rate limiting and alerting engine",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="json",
        choices=["json", "text"],
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: .env in the working directory)",
    )
    parser.add_argument(
        "--rules-file",
        default=None,
        help="YAML file with rules and component settings",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until signalled)",
    )
    return parser


def build_config(args: argparse.Namespace) -> ServiceConfig:
    config = ServiceConfig.from_env(env_file=args.env_file)
    rules_file = args.rules_file or config.rules_file
    if rules_file:
        config = ServiceConfig.from_yaml(rules_file, base=config)
    return config


# ============================================================
# RUNTIME
# ============================================================

def _install_signal_handlers(stop_event: asyncio.Event) -> List[signal.Signals]:
    """Set ``stop_event`` on SIGINT/SIGTERM. Returns the signals installed."""
    if sys.platform == "win32":
        signal.signal(signal.SIGINT, lambda signum, frame: stop_event.set())
        return []

    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)
        installed.append(sig)
    return installed


async def run_application(args: argparse.Namespace) -> int:
    """
    Run the engine until signalled or until ``--duration`` elapses.

    Returns:
        Exit code
    """
    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message} {e.context}")
        return 2

    service = RateLimitingService(config=config)
    stop_event = asyncio.Event()
    installed = _install_signal_handlers(stop_event)

    await service.start()
    try:
        if args.duration is not None:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=args.duration)
            except asyncio.TimeoutError:
                logger.info(f"Run duration of {args.duration}s elapsed")
        else:
            await stop_event.wait()
    finally:
        await service.stop()
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_format=args.log_format)

    return asyncio.run(run_application(args))


if __name__ == "__main__":
    sys.exit(main())
