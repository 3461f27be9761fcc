"""
TEMPFOCUS Focus Services
Focuser control and temperature compensation
"""

from .focuser_service import FocuserService, FocuserInfo, FocuserState
from .temp_compensation import (
    CompensationMode,
    CompensationOutcome,
    CompensationResult,
    CompensationState,
    MoveCommand,
    TemperatureCompensator,
    compute_absolute_move,
    compute_relative_move,
    guiding_stopped,
    round_half_away_from_zero,
    should_trigger,
)
from .compensation_monitor import CompensationMonitor

__all__ = [
    "CompensationMode",
    "CompensationMonitor",
    "CompensationOutcome",
    "CompensationResult",
    "CompensationState",
    "FocuserInfo",
    "FocuserService",
    "FocuserState",
    "MoveCommand",
    "TemperatureCompensator",
    "compute_absolute_move",
    "compute_relative_move",
    "guiding_stopped",
    "round_half_away_from_zero",
    "should_trigger",
]
