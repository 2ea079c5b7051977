#!/usr/bin/env python3
"""
Workline Gateway - Entry Point

Runs the device dispatch and protocol gateway:
- Polls the work store for queued items and sends them to the device
- Reconciles device events back into the store
- Publishes link and progress status to the shared status file

Usage:
    workline                          # Start with default config
    workline --config my.yaml         # Use custom config file
    workline --dry-run                # Print config and exit
    workline --verbose                # Enable debug logging
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from workline import __version__
from workline.common.config import GatewayConfig, load_config_file
from workline.common.exceptions import ConfigError, StoreError
from workline.common.logging_setup import get_service_logger, reconfigure_service_loggers
from workline.services.gateway.service import GatewayService

logger = get_service_logger("main")

# Default configuration path
DEFAULT_CONFIG_PATH = "config.yaml"


def load_config(config_path: str | None) -> GatewayConfig:
    """
    Load configuration from YAML file.

    Without an explicit path, a missing default file means built-in
    defaults; an explicit path that does not exist is an error.

    Raises:
        ConfigError: unreadable or invalid configuration
    """
    if config_path is None:
        if not Path(DEFAULT_CONFIG_PATH).exists():
            return GatewayConfig()
        config_path = DEFAULT_CONFIG_PATH

    return load_config_file(config_path)


def resolve_logging(config: GatewayConfig, verbose: bool = False) -> tuple[str, bool]:
    """Log level and format: --verbose, then environment, then config file"""
    if verbose:
        # Plain text in verbose/debug mode
        return "DEBUG", False

    level = os.environ.get("WORKLINE_LOG_LEVEL") or config.logging.level
    log_format = os.environ.get("WORKLINE_LOG_FORMAT")
    json_format = config.logging.json if not log_format else log_format.lower() == "json"
    return level.upper(), json_format


def print_startup_banner(config: GatewayConfig) -> None:
    """Print startup information."""
    device = config.device
    if device.simulate:
        device_mode = "simulation (forced)"
    elif device.port:
        device_mode = f"{device.port} @ {device.baudrate} baud"
    else:
        device_mode = f"auto-discover @ {device.baudrate} baud"

    print()
    print("=" * 60)
    print(f"  WORKLINE GATEWAY v{__version__}")
    print("=" * 60)
    print()
    print(f"  Work store:   {config.database.path}")
    print(f"  Device:       {device_mode}")
    print(f"  Status file:  {config.status.path}")
    print(f"  Dispatch:     every {config.dispatch.interval_s:g}s")
    if config.health.enabled:
        print(f"  Health:       http://{config.health.host}:{config.health.port}/health")
    else:
        print("  Health:       disabled")
    print()
    print("=" * 60)
    print()


async def run_gateway(config: GatewayConfig) -> int:
    """
    Run the gateway until a shutdown signal.

    Returns:
        Process exit status
    """
    try:
        service = GatewayService(config)
    except StoreError as e:
        logger.critical(e.message)
        return 1

    try:
        await service.start()
    except StoreError:
        return 1
    finally:
        await service.stop()

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="workline",
        description="Workline Gateway - device dispatch and event reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    workline                          # Start with default config
    workline --config my.yaml         # Use custom config file
    workline --dry-run                # Validate config and exit
    workline -v                       # Enable debug logging
        """
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH} if present)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without starting"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Workline Gateway v{__version__}"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    level, json_format = resolve_logging(config, verbose=args.verbose)
    reconfigure_service_loggers(level, json_format)

    print_startup_banner(config)

    if args.dry_run:
        print("Dry run mode - configuration valid")
        print("Exiting without starting the gateway")
        return 0

    print("Starting gateway...")
    print("Press Ctrl+C to stop")
    print()

    try:
        return asyncio.run(run_gateway(config))
    except KeyboardInterrupt:
        print("\nShutdown requested")
        return 0


if __name__ == "__main__":
    sys.exit(main())
