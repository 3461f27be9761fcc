"""
TEMPFOCUS Focuser Service Unit Tests
"""

import asyncio

import pytest

from services.focus.focuser_service import (
    FocuserInfo,
    FocuserService,
    FocuserState,
    FocusPositionRecord,
)
from tempfocus.config import FocuserConfig
from tempfocus.exceptions import DeviceError, NotConnectedError


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def focuser():
    """Create a focuser service with near-instant moves."""
    config = FocuserConfig(steps_per_second=1_000_000.0)
    return FocuserService(config=config)


# ============================================================================
# FocuserState Enum Tests
# ============================================================================

class TestFocuserState:
    """Tests for FocuserState enum."""

    def test_all_states_defined(self):
        """Verify all focuser states are defined."""
        assert FocuserState.IDLE.value == "idle"
        assert FocuserState.MOVING.value == "moving"
        assert FocuserState.ERROR.value == "error"


# ============================================================================
# Info Tests
# ============================================================================

class TestFocuserInfo:
    """Tests for get_info()."""

    def test_disconnected_info(self, focuser):
        """Verify info of a disconnected focuser hides the position."""
        info = focuser.get_info()
        assert isinstance(info, FocuserInfo)
        assert info.connected is False
        assert info.position is None

    @pytest.mark.asyncio
    async def test_connected_info(self, focuser):
        """Verify info reports temperature and position."""
        await focuser.connect()
        focuser.set_temperature(8.5)
        info = focuser.get_info()
        assert info.connected is True
        assert info.temperature == 8.5
        assert info.position == 25000


# ============================================================================
# Movement Tests
# ============================================================================

class TestFocuserMovement:
    """Tests for focuser movement."""

    @pytest.mark.asyncio
    async def test_connect(self, focuser):
        """Verify connect works."""
        result = await focuser.connect()
        assert result is True
        assert focuser.connected is True

    @pytest.mark.asyncio
    async def test_disconnect(self, focuser):
        """Verify disconnect works."""
        await focuser.connect()
        await focuser.disconnect()
        assert focuser.connected is False

    @pytest.mark.asyncio
    async def test_move_requires_connection(self, focuser):
        """Verify moves fail when not connected."""
        with pytest.raises(NotConnectedError):
            await focuser.move_absolute(26000)

    @pytest.mark.asyncio
    async def test_move_absolute(self, focuser):
        """Verify absolute move reaches the target."""
        await focuser.connect()
        result = await focuser.move_absolute(26000)
        assert result is True
        assert focuser.position == 26000
        assert focuser.state == FocuserState.IDLE

    @pytest.mark.asyncio
    async def test_move_outside_range_rejected(self, focuser):
        """Verify targets outside the mechanical range are refused, not clamped."""
        await focuser.connect()
        with pytest.raises(DeviceError) as exc_info:
            await focuser.move_absolute(100000)
        assert exc_info.value.details["position"] == 100000
        with pytest.raises(DeviceError):
            await focuser.move_absolute(-5)

        assert focuser.position == 25000
        assert focuser.state == FocuserState.IDLE
        assert focuser.get_position_history() == []

    @pytest.mark.asyncio
    async def test_relative_move_past_zero_rejected(self):
        """Verify steps that would run past zero are not silently dropped."""
        focuser = FocuserService(FocuserConfig(initial_position=3, steps_per_second=1_000_000.0))
        await focuser.connect()
        with pytest.raises(DeviceError):
            await focuser.move_relative(-7)
        assert focuser.position == 3

    @pytest.mark.asyncio
    async def test_move_relative(self, focuser):
        """Verify relative moves in both directions."""
        await focuser.connect()
        await focuser.move_relative(-7)
        assert focuser.position == 24993
        await focuser.move_relative(12)
        assert focuser.position == 25005

    @pytest.mark.asyncio
    async def test_halt_when_idle(self, focuser):
        """Verify halt without a move leaves the focuser idle."""
        await focuser.connect()
        await focuser.halt()
        assert focuser.state == FocuserState.IDLE
        assert focuser.position == 25000

    @pytest.mark.asyncio
    async def test_halt_stops_move_in_progress(self):
        """Verify halt ends the running move and a new move is not overwritten."""
        focuser = FocuserService(FocuserConfig(steps_per_second=1000.0))
        await focuser.connect()

        move = asyncio.create_task(focuser.move_absolute(26000))
        await asyncio.sleep(0.2)
        await focuser.halt()

        assert await move is False
        halted_at = focuser.position
        assert 25000 < halted_at < 26000
        assert focuser.state == FocuserState.IDLE

        focuser.config.steps_per_second = 1_000_000.0
        assert await focuser.move_absolute(25000) is True
        await asyncio.sleep(0.2)
        assert focuser.position == 25000

        history = focuser.get_position_history()
        assert [record.position for record in history] == [halted_at, 25000]

    @pytest.mark.asyncio
    async def test_cancelled_move_propagates(self):
        """Verify cancelling the caller is not mistaken for a halt."""
        focuser = FocuserService(FocuserConfig(steps_per_second=1000.0))
        await focuser.connect()

        move = asyncio.create_task(focuser.move_absolute(26000))
        await asyncio.sleep(0.1)
        move.cancel()

        with pytest.raises(asyncio.CancelledError):
            await move
        assert focuser.state == FocuserState.ERROR


# ============================================================================
# Position History Tests
# ============================================================================

class TestPositionHistory:
    """Tests for focus position history tracking."""

    @pytest.mark.asyncio
    async def test_move_records_history(self, focuser):
        """Verify moves are recorded with temperature and reason."""
        await focuser.connect()
        focuser.set_temperature(3.2)
        await focuser.move_absolute(26000, reason="test_move")

        history = focuser.get_position_history(limit=1)
        assert len(history) == 1
        assert isinstance(history[0], FocusPositionRecord)
        assert history[0].position == 26000
        assert history[0].temperature_c == 3.2
        assert history[0].reason == "test_move"

    def test_get_position_history_empty(self, focuser):
        """Verify empty history returns empty list."""
        assert focuser.get_position_history() == []

    @pytest.mark.asyncio
    async def test_get_position_history_limit(self, focuser):
        """Verify history limit is respected."""
        await focuser.connect()
        for i in range(5):
            await focuser.move_absolute(25000 + i * 100)

        assert len(focuser.get_position_history(limit=3)) == 3
        assert focuser.get_position_history(limit=0) == []

    @pytest.mark.asyncio
    async def test_clear_position_history(self, focuser):
        """Verify history can be cleared."""
        await focuser.connect()
        await focuser.move_relative(10)

        assert focuser.clear_position_history() == 1
        assert focuser.get_position_history() == []
