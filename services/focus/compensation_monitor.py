"""
TEMPFOCUS Compensation Monitor

Background task that polls the temperature compensator at a fixed interval
and runs a compensation cycle whenever it is armed.
"""

import asyncio
import logging
from typing import Optional

from services.focus.temp_compensation import CompensationResult, TemperatureCompensator

logger = logging.getLogger("TEMPFOCUS.Monitor")


class CompensationMonitor:
    """
    Periodic driver for a TemperatureCompensator.

    Cycles run one at a time on the event loop, so the compensator never
    sees overlapping execute() calls.

    Usage:
        monitor = CompensationMonitor(compensator, poll_interval=60.0)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(self, compensator: TemperatureCompensator, poll_interval: float = 60.0):
        """
        Initialize monitor.

        Args:
            compensator: Compensator to drive
            poll_interval: Seconds between polls
        """
        self.compensator = compensator
        self.poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._last_result: Optional[CompensationResult] = None

    @property
    def running(self) -> bool:
        """Check if the polling task is active."""
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> Optional[CompensationResult]:
        """Result of the most recent compensation cycle."""
        return self._last_result

    async def poll_once(self) -> Optional[CompensationResult]:
        """
        Poll the compensator once.

        Returns:
            Cycle result, or None if the compensator was not armed
        """
        if not self.compensator.validate() and self.compensator.issues_changed:
            for issue in self.compensator.issues:
                logger.warning(issue)

        if not self.compensator.should_trigger():
            return None

        result = await self.compensator.execute()
        self._last_result = result
        logger.debug(f"Compensation cycle {self.compensator.cycle_count}: "
                     f"{result.outcome.value}")
        return result

    def start(self):
        """Start polling in the background."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Temperature compensation monitor started "
                    f"(every {self.poll_interval:.0f}s)")

    async def stop(self):
        """Stop polling and wait for the current cycle to unwind."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Temperature compensation monitor stopped")

    async def _run(self):
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # A failed cycle leaves the compensator armed for the next poll
                logger.error(f"Compensation cycle failed: {e}")

            await asyncio.sleep(self.poll_interval)
