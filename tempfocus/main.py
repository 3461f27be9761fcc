"""
TEMPFOCUS Application Entry Point

Runs temperature focus compensation against a focuser and PHD2 until
interrupted.

Usage:
    tempfocus                          # Run with default config
    tempfocus --config /path/to/config.yaml
    tempfocus --log-level DEBUG
    tempfocus --dry-run                # Validate config without starting

Entry Points:
    - CLI: `tempfocus` command (via pyproject.toml)
    - Direct: `python -m tempfocus.main`
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import TYPE_CHECKING

from tempfocus import __version__
from tempfocus.config import TempFocusConfig, load_config
from tempfocus.exceptions import ConfigurationError, TempFocusError
from tempfocus.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from types import FrameType

__all__ = ["main", "async_main", "create_parser"]

logger = get_logger(__name__)


# =============================================================================
# Argument Parser
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="tempfocus",
        description="Temperature-driven focus compensation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file (default: auto-discover)",
    )

    parser.add_argument(
        "-l",
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (overrides config file)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        metavar="PATH",
        help="Path to log file (default: console only)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and exit without connecting to devices",
    )

    return parser


# =============================================================================
# Signal Handlers
# =============================================================================


class GracefulShutdown:
    """Manages graceful shutdown on SIGINT and SIGTERM."""

    def __init__(self) -> None:
        self._shutdown_requested = False
        self._shutdown_event: asyncio.Event | None = None
        self._original_handlers: dict[int, signal.Handlers] = {}

    @property
    def shutdown_requested(self) -> bool:
        """Check if shutdown has been requested."""
        return self._shutdown_requested

    def install_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        self._original_handlers[signal.SIGINT] = signal.signal(
            signal.SIGINT, self._handle_signal
        )
        self._original_handlers[signal.SIGTERM] = signal.signal(
            signal.SIGTERM, self._handle_signal
        )
        logger.debug("Signal handlers installed for graceful shutdown")

    def restore_handlers(self) -> None:
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        signal_name = signal.Signals(signum).name
        if self._shutdown_requested:
            logger.warning(f"Received {signal_name} again - forcing immediate exit")
            sys.exit(1)

        logger.info(f"Received {signal_name} - initiating graceful shutdown...")
        self._shutdown_requested = True

        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def get_shutdown_event(self) -> asyncio.Event:
        """Get or create async shutdown event."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event


_shutdown_handler = GracefulShutdown()


def get_shutdown_handler() -> GracefulShutdown:
    """Get the global shutdown handler instance."""
    return _shutdown_handler


# =============================================================================
# Main Entry Points
# =============================================================================


def describe_config(config: TempFocusConfig) -> str:
    """One-line summary of the compensation model."""
    comp = config.compensation
    if comp.absolute:
        model = f"absolute, position = {comp.slope:g} * T + {comp.intercept:g}"
    else:
        model = f"relative, steps = {comp.slope:g} * dT"
    return (f"{model}; threshold {comp.temperature_delta:.1f}°C; "
            f"PHD2 at {config.guider.host}:{config.guider.port}")


async def async_main(config: TempFocusConfig) -> int:
    """Connect devices and run the compensation monitor until shutdown.

    Args:
        config: Validated configuration

    Returns:
        Exit code (0 for success)
    """
    from services.focus.compensation_monitor import CompensationMonitor
    from services.focus.focuser_service import FocuserService
    from services.focus.temp_compensation import TemperatureCompensator
    from services.guiding.phd2_client import PHD2Client

    shutdown_event = get_shutdown_handler().get_shutdown_event()

    focuser = FocuserService(config.focuser)
    guider = PHD2Client.from_config(config.guider)

    if not await guider.connect():
        logger.error("Cannot run compensation without PHD2")
        return 1
    await focuser.connect()

    compensator = TemperatureCompensator(focuser, guider, config.compensation)
    monitor = CompensationMonitor(compensator, config.monitor.poll_interval)

    try:
        if not compensator.validate():
            for issue in compensator.issues:
                logger.warning(issue)

        if config.monitor.enabled:
            monitor.start()
        else:
            logger.info("Compensation monitor disabled in configuration")

        logger.info("Temperature compensation running. Press Ctrl+C to stop.")
        await shutdown_event.wait()
        return 0
    finally:
        await monitor.stop()
        await focuser.disconnect()
        await guider.disconnect()
        logger.info(f"Applied {compensator.cycle_count} compensation cycles")


def main() -> int:
    """Main entry point for the TEMPFOCUS application.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(log_level=args.log_level or "INFO", log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.log_level is None:
        setup_logging(log_level=config.log_level,
                      log_file=args.log_file or config.log_file)

    logger.info(f"TEMPFOCUS v{__version__}: {describe_config(config)}")

    if args.dry_run:
        logger.info("Dry run mode - configuration valid, exiting")
        return 0

    shutdown = get_shutdown_handler()
    shutdown.install_handlers()

    try:
        return asyncio.run(async_main(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except TempFocusError as e:
        logger.error(f"TEMPFOCUS error: {e}")
        return 1
    finally:
        shutdown.restore_handlers()


if __name__ == "__main__":
    sys.exit(main())
