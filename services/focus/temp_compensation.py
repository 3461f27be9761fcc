"""
TEMPFOCUS Temperature Compensation
Linear focus model driven by the focuser temperature probe

Each poll:
- should_trigger() compares the probe reading with the last baseline and
  arms a cycle once |dT| reaches the configured threshold
- execute() computes the next focuser command (absolute target or relative
  step count) from the linear model, carrying the fractional remainder of
  the rounded command into the next cycle
- guiding is stopped for the physical move and always restarted afterwards,
  even when the move fails or the task is cancelled
"""

import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from services.alerts.notifier import LogNotifier, Notifier
from tempfocus.config import CompensationConfig
from tempfocus.exceptions import (
    InvalidReadingError,
    NotConnectedError,
    OutOfRangeError,
    TempFocusError,
)

logger = logging.getLogger("TEMPFOCUS.Compensation")

# Focuser commands are signed 32-bit integers
INT32_MIN = -2**31
INT32_MAX = 2**31 - 1

FOCUSER_NOT_CONNECTED = "Focuser is not connected."
GUIDER_NOT_CONNECTED = "Guider is not connected."
TEMPERATURE_UNAVAILABLE = "Focuser temperature is not available."
BASELINE_UNAVAILABLE = "No temperature baseline has been recorded yet."
SLOPE_IS_ZERO = "Slope is zero. Temperature compensation will have no effect."
COMPENSATION_APPLIED = "Temperature compensation applied."


class CompensationMode(Enum):
    """Positioning algorithm."""
    ABSOLUTE = "absolute"   # position = slope * T + intercept
    RELATIVE = "relative"   # steps = slope * dT


class CompensationOutcome(Enum):
    """How a compensation cycle ended."""
    MOVED = "moved"
    NO_MOVE = "no_move"
    BASELINE_INITIALIZED = "baseline_initialized"
    ABORTED = "aborted"


# =============================================================================
# Device capabilities
# =============================================================================


class FocuserDevice(Protocol):
    """Focuser as used by the compensator."""

    def get_info(self) -> Any: ...

    async def move_absolute(self, position: int) -> Any: ...

    async def move_relative(self, steps: int) -> Any: ...


class GuiderDevice(Protocol):
    """Autoguider as used by the compensator."""

    def get_info(self) -> Any: ...

    async def stop_guiding(self) -> Any: ...

    async def start_guiding(self, force_calibration: bool = False,
                            reference: Optional[Any] = None) -> Any: ...


# =============================================================================
# State and results
# =============================================================================


@dataclass
class CompensationState:
    """Runtime state of the compensator. Never persisted."""
    last_temperature: Optional[float] = None  # None until the first reading
    absolute_remainder: float = 0.0
    relative_remainder: float = 0.0
    cycle_count: int = 0

    def reset(self):
        """Forget the baseline, remainders and counter."""
        self.last_temperature = None
        self.absolute_remainder = 0.0
        self.relative_remainder = 0.0
        self.cycle_count = 0


@dataclass(frozen=True)
class MoveCommand:
    """Rounded focuser command produced by the position calculator."""
    mode: CompensationMode
    value: int              # Absolute target or relative step count
    exact: float            # Unrounded model output including carry
    remainder: float        # exact - value, carried into the next cycle
    move_needed: bool


@dataclass
class CompensationResult:
    """Result of one execute() call."""
    outcome: CompensationOutcome
    temperature: Optional[float] = None
    command: Optional[MoveCommand] = None
    error: Optional[TempFocusError] = None


# =============================================================================
# Pure functions
# =============================================================================


def _is_valid_reading(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def round_half_away_from_zero(value: float) -> int:
    """
    Round to the nearest integer, ties away from zero.

    Python's round() rounds ties to even, which would bias the carried
    remainder; 2.5 -> 3 and -2.5 -> -3 here.
    """
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return int(math.copysign(whole, value))


def _check_range(exact: float, mode: CompensationMode):
    if not math.isfinite(exact) or exact > INT32_MAX or exact < INT32_MIN:
        if mode is CompensationMode.ABSOLUTE:
            message = "Calculated focuser position is out of range."
        else:
            message = "Calculated focuser steps are out of range."
        raise OutOfRangeError(message, mode=mode.value, value=exact)


def should_trigger(focuser_connected: bool,
                   guider_connected: bool,
                   current_temp: Optional[float],
                   delta_threshold: Optional[float],
                   state: CompensationState) -> bool:
    """
    Decide whether a compensation cycle should run.

    The first valid reading only initialises state.last_temperature and never
    triggers. That initialisation is the only side effect.

    Args:
        focuser_connected: Focuser is available
        guider_connected: Guider is available
        current_temp: Focuser probe reading in °C
        delta_threshold: Minimum |dT| in °C
        state: Compensation state holding the baseline

    Returns:
        True if |current_temp - baseline| >= delta_threshold
    """
    if not focuser_connected or not guider_connected:
        return False

    if not _is_valid_reading(current_temp):
        return False

    if state.last_temperature is None:
        state.last_temperature = current_temp
        return False

    if delta_threshold is None or math.isnan(delta_threshold) or delta_threshold <= 0:
        return False

    return abs(current_temp - state.last_temperature) >= delta_threshold


def compute_absolute_move(current_temp: float,
                          slope: float,
                          intercept: float,
                          remainder: float,
                          current_position: Optional[int] = None) -> MoveCommand:
    """
    Target position from position = slope * T + intercept.

    Args:
        current_temp: Focuser probe reading in °C
        slope: Steps per °C
        intercept: Position at 0 °C
        remainder: Carry from the previous absolute cycle
        current_position: Focuser position if known

    Returns:
        MoveCommand; move_needed is False when the focuser already sits at
        the target

    Raises:
        OutOfRangeError: Target does not fit a signed 32-bit integer
    """
    exact = current_temp * slope + intercept + remainder
    _check_range(exact, CompensationMode.ABSOLUTE)

    target = round_half_away_from_zero(exact)
    return MoveCommand(
        mode=CompensationMode.ABSOLUTE,
        value=target,
        exact=exact,
        remainder=exact - target,
        move_needed=current_position is None or current_position != target,
    )


def compute_relative_move(current_temp: float,
                          last_temperature: float,
                          slope: float,
                          remainder: float) -> MoveCommand:
    """
    Step count from steps = slope * (T - baseline).

    Raises:
        OutOfRangeError: Step count does not fit a signed 32-bit integer
    """
    exact = (current_temp - last_temperature) * slope + remainder
    _check_range(exact, CompensationMode.RELATIVE)

    steps = round_half_away_from_zero(exact)
    return MoveCommand(
        mode=CompensationMode.RELATIVE,
        value=steps,
        exact=exact,
        remainder=exact - steps,
        move_needed=steps != 0,
    )


@asynccontextmanager
async def guiding_stopped(guider: GuiderDevice):
    """
    Stop guiding for the duration of the block.

    Guiding is restarted (no forced calibration, no exposure reference) on
    every exit once the stop call has returned, including errors raised in
    the block and task cancellation. When the block failed, a failing restart
    is logged and the block's error is the one propagated.
    """
    await guider.stop_guiding()
    try:
        yield
    except BaseException:
        try:
            await _restart_guiding(guider)
        except Exception as e:
            logger.error(f"Failed to restart guiding after focuser fault: {e}")
        raise
    await _restart_guiding(guider)


async def _restart_guiding(guider: GuiderDevice):
    result = await guider.start_guiding(force_calibration=False, reference=None)
    if result is False:
        logger.warning("Guider did not confirm restart after focuser move")


# =============================================================================
# Compensator
# =============================================================================


class TemperatureCompensator:
    """
    Temperature-driven focus compensation for an imaging sequence.

    The caller serialises calls: poll should_trigger() and, when it returns
    True, await execute(). No locking is done here.

    Usage:
        compensator = TemperatureCompensator(focuser, guider,
                                             CompensationConfig(slope=-2.5))
        if compensator.should_trigger():
            result = await compensator.execute()
    """

    def __init__(self,
                 focuser: Optional[FocuserDevice],
                 guider: Optional[GuiderDevice],
                 config: Optional[CompensationConfig] = None,
                 notifier: Optional[Notifier] = None):
        """
        Initialize compensator.

        Args:
            focuser: Focuser providing temperature, position and moves
            guider: Guider stopped during moves
            config: Compensation model settings
            notifier: Receives user-visible success/error messages
        """
        self.focuser = focuser
        self.guider = guider
        self.config = config or CompensationConfig()
        self.notifier = notifier or LogNotifier()
        self.state = CompensationState()

        self._issues: List[str] = []
        self._last_issues: List[str] = []
        self._issues_changed = False
        self._issue_listeners: List[Callable[[List[str]], None]] = []

    def clone(self) -> "TemperatureCompensator":
        """Copy with the same devices and settings but fresh runtime state."""
        return TemperatureCompensator(
            self.focuser,
            self.guider,
            self.config.model_copy(),
            self.notifier,
        )

    @property
    def mode(self) -> CompensationMode:
        """Active positioning algorithm."""
        return CompensationMode.ABSOLUTE if self.config.absolute else CompensationMode.RELATIVE

    @property
    def cycle_count(self) -> int:
        """Number of compensation cycles run past the baseline check."""
        return self.state.cycle_count

    def reset(self):
        """Reset runtime state, e.g. when the sequence is restarted."""
        self.state.reset()
        logger.debug("Compensation state reset")

    def _device_infos(self):
        focuser_info = self.focuser.get_info() if self.focuser is not None else None
        guider_info = self.guider.get_info() if self.guider is not None else None
        return focuser_info, guider_info

    @staticmethod
    def _is_connected(info) -> bool:
        return info is not None and bool(info.connected)

    # =========================================================================
    # TRIGGER
    # =========================================================================

    def should_trigger(self) -> bool:
        """Check the current probe reading against the baseline."""
        focuser_info, guider_info = self._device_infos()
        return should_trigger(
            self._is_connected(focuser_info),
            self._is_connected(guider_info),
            focuser_info.temperature if focuser_info is not None else None,
            self.config.temperature_delta,
            self.state,
        )

    # =========================================================================
    # MOVE
    # =========================================================================

    def compute_move(self, current_temp: float,
                     current_position: Optional[int] = None) -> MoveCommand:
        """
        Next focuser command for the active mode. Does not change state.

        Raises:
            OutOfRangeError: Command does not fit the focuser range
            InvalidReadingError: Relative mode has no temperature baseline yet
        """
        if not self.config.absolute and self.state.last_temperature is None:
            raise InvalidReadingError(BASELINE_UNAVAILABLE)
        if self.config.absolute:
            return compute_absolute_move(
                current_temp,
                self.config.slope,
                self.config.intercept,
                self.state.absolute_remainder,
                current_position,
            )
        return compute_relative_move(
            current_temp,
            self.state.last_temperature,
            self.config.slope,
            self.state.relative_remainder,
        )

    def _require_ready(self, focuser_info, guider_info) -> float:
        if not self._is_connected(focuser_info):
            raise NotConnectedError(FOCUSER_NOT_CONNECTED, device_type="focuser")
        if not self._is_connected(guider_info):
            raise NotConnectedError(GUIDER_NOT_CONNECTED, device_type="guider")

        temperature = focuser_info.temperature
        if not _is_valid_reading(temperature):
            raise InvalidReadingError(TEMPERATURE_UNAVAILABLE, value=temperature)
        return temperature

    def _abort(self, error: TempFocusError,
               temperature: Optional[float] = None) -> CompensationResult:
        self.notifier.error(error.message)
        return CompensationResult(
            outcome=CompensationOutcome.ABORTED,
            temperature=temperature,
            error=error,
        )

    def _commit_remainder(self, command: MoveCommand):
        if command.mode is CompensationMode.ABSOLUTE:
            self.state.absolute_remainder = command.remainder
        else:
            self.state.relative_remainder = command.remainder

    async def _apply(self, command: MoveCommand):
        if command.mode is CompensationMode.ABSOLUTE:
            await self.focuser.move_absolute(command.value)
        else:
            await self.focuser.move_relative(command.value)

    async def execute(self) -> CompensationResult:
        """
        Run one compensation cycle.

        Connection problems, an invalid reading or an out-of-range command
        are reported to the notifier and abort the cycle. A failure of the
        focuser move itself propagates after guiding has been restarted.

        Returns:
            CompensationResult describing how the cycle ended
        """
        focuser_info, guider_info = self._device_infos()

        try:
            current_temp = self._require_ready(focuser_info, guider_info)
        except (NotConnectedError, InvalidReadingError) as e:
            return self._abort(e)

        if self.state.last_temperature is None:
            self.state.last_temperature = current_temp
            return CompensationResult(
                outcome=CompensationOutcome.BASELINE_INITIALIZED,
                temperature=current_temp,
            )

        try:
            try:
                command = self.compute_move(
                    current_temp, getattr(focuser_info, "position", None)
                )
            except OutOfRangeError as e:
                return self._abort(e, temperature=current_temp)

            self._commit_remainder(command)

            if not command.move_needed:
                if command.mode is CompensationMode.RELATIVE:
                    self.state.last_temperature = current_temp
                logger.debug(f"No focuser move needed ({command.mode.value}, "
                             f"exact={command.exact:.3f})")
                return CompensationResult(
                    outcome=CompensationOutcome.NO_MOVE,
                    temperature=current_temp,
                    command=command,
                )

            logger.info(f"Temperature compensation at {current_temp:.2f}°C: "
                        f"{command.mode.value} {command.value} "
                        f"(exact {command.exact:.3f})")

            async with guiding_stopped(self.guider):
                await self._apply(command)
                self.state.last_temperature = current_temp
                self.notifier.success(COMPENSATION_APPLIED)

            return CompensationResult(
                outcome=CompensationOutcome.MOVED,
                temperature=current_temp,
                command=command,
            )
        finally:
            self.state.cycle_count += 1

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @property
    def issues(self) -> List[str]:
        """Issues found by the last validate() call."""
        return list(self._issues)

    @property
    def issues_changed(self) -> bool:
        """Whether the last validate() produced a different issue list."""
        return self._issues_changed

    def register_issues_listener(self, callback: Callable[[List[str]], None]):
        """Call callback with the new issue list whenever it changes."""
        self._issue_listeners.append(callback)

    def validate(self) -> bool:
        """
        Recompute configuration and equipment issues.

        Returns:
            True if there are no issues
        """
        focuser_info, guider_info = self._device_infos()

        issues: List[str] = []
        if not self._is_connected(focuser_info):
            issues.append(FOCUSER_NOT_CONNECTED)
        if not self._is_connected(guider_info):
            issues.append(GUIDER_NOT_CONNECTED)
        if self.config.slope == 0:
            issues.append(SLOPE_IS_ZERO)

        self._issues = issues
        self._issues_changed = issues != self._last_issues
        if self._issues_changed:
            self._last_issues = list(issues)
            for callback in self._issue_listeners:
                try:
                    callback(list(issues))
                except Exception as e:
                    logger.error(f"Issues listener error: {e}")

        return not issues
