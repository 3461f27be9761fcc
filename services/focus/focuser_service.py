"""
TEMPFOCUS Focuser Service
Simulated Electronic Focuser

Stands in for a ZWO EAF-style focuser with an on-board temperature probe:
- Absolute and relative moves within the mechanical range
- Gradual movement timed by steps_per_second, interruptible by halt()
- Temperature reading (set externally when simulating drift)
- Position history with the reason for every move
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from tempfocus.config import FocuserConfig
from tempfocus.exceptions import DeviceError, NotConnectedError

logger = logging.getLogger("TEMPFOCUS.Focus")


class FocuserState(Enum):
    """Focuser states."""
    IDLE = "idle"
    MOVING = "moving"
    ERROR = "error"


@dataclass
class FocuserInfo:
    """Snapshot of the focuser as seen by the compensation controller."""
    connected: bool
    temperature: float
    position: Optional[int] = None


@dataclass
class FocusPositionRecord:
    """Record of a focus position change."""
    timestamp: datetime
    position: int
    temperature_c: float
    reason: str  # e.g., "manual", "temp_compensation"


class FocuserService:
    """
    Simulated focuser.

    Usage:
        focuser = FocuserService()
        await focuser.connect()
        await focuser.move_absolute(25100)
        info = focuser.get_info()
    """

    def __init__(self, config: Optional[FocuserConfig] = None):
        """
        Initialize focuser service.

        Args:
            config: Focuser configuration
        """
        self.config = config or FocuserConfig()
        self._state = FocuserState.IDLE
        self._position = min(self.config.initial_position, self.config.max_position)
        self._temperature = 20.0
        self._connected = False
        self._move_task: Optional[asyncio.Task] = None
        self._halt_requested = False

        self._position_history: List[FocusPositionRecord] = []
        self._position_history_max_size: int = 1000

    @property
    def connected(self) -> bool:
        """Check if focuser is connected."""
        return self._connected

    @property
    def state(self) -> FocuserState:
        """Current focuser state."""
        return self._state

    @property
    def position(self) -> int:
        """Current focuser position in steps."""
        return self._position

    @property
    def temperature(self) -> float:
        """Current focuser temperature in Celsius."""
        return self._temperature

    def set_temperature(self, temperature_c: float):
        """Set the simulated probe temperature."""
        self._temperature = temperature_c

    def get_info(self) -> FocuserInfo:
        """Current connection, temperature and position."""
        return FocuserInfo(
            connected=self._connected,
            temperature=self._temperature,
            position=self._position if self._connected else None,
        )

    async def connect(self) -> bool:
        """
        Connect to focuser.

        Returns:
            True if connected successfully
        """
        logger.info(f"Connecting to focuser: {self.config.device}")
        self._connected = True
        self._state = FocuserState.IDLE
        logger.info(f"Focuser connected at position {self._position}")
        return True

    async def disconnect(self):
        """Disconnect from focuser."""
        self._connected = False
        self._state = FocuserState.IDLE
        logger.info("Focuser disconnected")

    # =========================================================================
    # MOVEMENT
    # =========================================================================

    async def move_absolute(self, position: int, reason: str = "temp_compensation") -> bool:
        """
        Move focuser to absolute position.

        Args:
            position: Target position in steps
            reason: Reason for move (kept in position history)

        Returns:
            True if move completed, False if it was stopped by halt()

        Raises:
            NotConnectedError: Focuser is not connected
            DeviceError: Position is outside 0..max_position
            RuntimeError: A move is already in progress
        """
        if not self._connected:
            raise NotConnectedError("Focuser not connected", device_type="focuser")

        if self._state == FocuserState.MOVING:
            raise RuntimeError("Focuser already moving")

        if not 0 <= position <= self.config.max_position:
            raise DeviceError(
                f"Requested position {position} is outside 0..{self.config.max_position}",
                device_type="focuser",
                position=position,
            )

        self._state = FocuserState.MOVING
        self._halt_requested = False
        self._move_task = asyncio.create_task(self._do_move(position))
        try:
            await self._move_task
        except asyncio.CancelledError:
            if not self._halt_requested:
                self._state = FocuserState.ERROR
                raise
            logger.warning(f"Move to {position} halted at {self._position}")
            self._state = FocuserState.IDLE
            self._record_position(reason)
            return False
        except BaseException:
            self._state = FocuserState.ERROR
            raise
        finally:
            self._move_task = None
            self._halt_requested = False

        self._state = FocuserState.IDLE
        self._record_position(reason)
        return True

    async def move_relative(self, steps: int, reason: str = "temp_compensation") -> bool:
        """
        Move focuser relative to current position.

        Args:
            steps: Steps to move (positive = outward)

        Returns:
            True if move completed
        """
        return await self.move_absolute(self._position + steps, reason=reason)

    async def _do_move(self, position: int):
        """Execute focuser move."""
        steps = abs(position - self._position)
        move_time = steps / self.config.steps_per_second

        logger.debug(f"Moving focuser: {self._position} -> {position} ({steps} steps)")

        start_pos = self._position
        start_time = datetime.now()

        while self._position != position:
            elapsed = (datetime.now() - start_time).total_seconds()
            progress = min(1.0, elapsed / move_time) if move_time > 0 else 1.0
            self._position = int(start_pos + (position - start_pos) * progress)
            if self._position != position:
                await asyncio.sleep(min(0.1, move_time))

        logger.debug(f"Move complete: position {self._position}")

    async def halt(self):
        """Stop a move in progress and wait until the focuser is idle."""
        task = self._move_task
        if task is not None and not task.done():
            self._halt_requested = True
            task.cancel()
            await asyncio.wait([task])
        self._state = FocuserState.IDLE
        logger.info(f"Focuser halted at position {self._position}")

    # =========================================================================
    # POSITION HISTORY
    # =========================================================================

    def _record_position(self, reason: str):
        self._position_history.append(FocusPositionRecord(
            timestamp=datetime.now(),
            position=self._position,
            temperature_c=self._temperature,
            reason=reason,
        ))
        if len(self._position_history) > self._position_history_max_size:
            self._position_history = self._position_history[-self._position_history_max_size:]

    def get_position_history(self, limit: Optional[int] = None) -> List[FocusPositionRecord]:
        """
        Get focus position history, oldest first.

        Args:
            limit: Only return the most recent records
        """
        if limit is None:
            return list(self._position_history)
        return self._position_history[-limit:] if limit > 0 else []

    def clear_position_history(self) -> int:
        """Clear position history and return the number of removed records."""
        count = len(self._position_history)
        self._position_history.clear()
        return count
