"""
TEMPFOCUS PHD2 Guiding Client
Socket Server Integration

- PHD2 socket server, JSON-RPC over TCP (port 4400)
- Guiding is stopped while the focuser moves and restarted afterwards
- AppState events keep the local guiding state current
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tempfocus.config import GuiderConfig
from tempfocus.exceptions import GuiderError

logger = logging.getLogger("TEMPFOCUS.Guiding")


class GuideState(Enum):
    """PHD2 application states."""
    STOPPED = "Stopped"
    SELECTED = "Selected"
    CALIBRATING = "Calibrating"
    GUIDING = "Guiding"
    LOST_LOCK = "LostLock"
    PAUSED = "Paused"
    LOOPING = "Looping"


@dataclass
class GuiderInfo:
    """Snapshot of the guider as seen by the compensation controller."""
    connected: bool
    state: GuideState = GuideState.STOPPED


class PHD2Client:
    """
    PHD2 Socket Server Client.

    Usage:
        client = PHD2Client()
        await client.connect()
        await client.stop_guiding()
        await client.start_guiding()
    """

    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 4400
    REQUEST_TIMEOUT = 10.0

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 settle_pixels: float = 1.0, settle_time: float = 10.0,
                 settle_timeout: float = 60.0):
        """
        Initialize PHD2 client.

        Args:
            host: PHD2 server hostname
            port: PHD2 server port (default 4400)
            settle_pixels: Maximum settle distance in pixels
            settle_time: Time to remain settled (seconds)
            settle_timeout: Maximum time to wait for settle (seconds)
        """
        self.host = host
        self.port = port
        self.settle_pixels = settle_pixels
        self.settle_time = settle_time
        self.settle_timeout = settle_timeout

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connected = False
        self._request_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._callbacks: List[Callable] = []
        self._state = GuideState.STOPPED
        self._event_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: GuiderConfig) -> "PHD2Client":
        """Build a client from the guider section of the configuration."""
        return cls(
            host=config.host,
            port=config.port,
            settle_pixels=config.settle_pixels,
            settle_time=config.settle_time,
            settle_timeout=config.settle_timeout,
        )

    @property
    def connected(self) -> bool:
        """Check if connected to PHD2."""
        return self._connected

    @property
    def state(self) -> GuideState:
        """Current guiding state."""
        return self._state

    def get_info(self) -> GuiderInfo:
        """Current connection and guiding state."""
        return GuiderInfo(connected=self._connected, state=self._state)

    async def connect(self) -> bool:
        """
        Connect to PHD2 socket server.

        Returns:
            True if connected successfully
        """
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self.host, self.port
            )
            self._connected = True
            logger.info(f"Connected to PHD2 at {self.host}:{self.port}")

            self._event_task = asyncio.create_task(self._listen_events())

            return True

        except ConnectionRefusedError:
            logger.error(f"PHD2 not running at {self.host}:{self.port}")
            return False
        except OSError as e:
            logger.error(f"Failed to connect to PHD2: {e}")
            return False

    async def disconnect(self):
        """Disconnect from PHD2."""
        self._connected = False

        if self._event_task:
            self._event_task.cancel()
            try:
                await self._event_task
            except asyncio.CancelledError:
                pass
            self._event_task = None

        if self._writer:
            self._writer.close()
            await self._writer.wait_closed()
            self._writer = None

        self._fail_pending("Disconnected from PHD2")
        logger.info("Disconnected from PHD2")

    async def _send_request(self, method: str, params: Optional[dict] = None) -> Any:
        """
        Send JSON-RPC request to PHD2 and wait for its response.

        Args:
            method: RPC method name
            params: Optional parameters

        Returns:
            Response result

        Raises:
            GuiderError: Not connected, PHD2 returned an error, or timeout
        """
        if not self._connected or not self._writer:
            raise GuiderError("Not connected to PHD2", method=method)

        self._request_id += 1
        request_id = self._request_id
        request = {
            "method": method,
            "id": request_id
        }
        if params:
            request["params"] = params

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            message = json.dumps(request) + "\r\n"
            self._writer.write(message.encode())
            await self._writer.drain()

            response = await asyncio.wait_for(future, timeout=self.REQUEST_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise GuiderError(f"PHD2 did not answer {method}", method=method) from e
        finally:
            self._pending.pop(request_id, None)

        if "error" in response:
            raise GuiderError(f"PHD2 error: {response['error']}", method=method)

        return response.get("result")

    def _fail_pending(self, reason: str):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(GuiderError(reason))
        self._pending.clear()

    async def _listen_events(self):
        """Read PHD2 messages, routing responses and events."""
        try:
            while self._connected:
                line = await self._reader.readline()
                if not line:
                    break

                try:
                    message = json.loads(line.decode())
                except json.JSONDecodeError:
                    continue

                await self._handle_message(message)

        except asyncio.CancelledError:
            raise
        except OSError as e:
            logger.error(f"Event listener error: {e}")
        finally:
            if self._connected:
                logger.warning("PHD2 connection closed")
                self._connected = False
            self._fail_pending("PHD2 connection closed")

    async def _handle_message(self, message: dict):
        """Resolve a pending request or handle an event."""
        if "Event" not in message and "id" in message:
            future = self._pending.get(message["id"])
            if future is not None and not future.done():
                future.set_result(message)
            return

        await self._handle_event(message)

    async def _handle_event(self, event: dict):
        """Handle PHD2 event."""
        event_type = event.get("Event")

        if event_type == "AppState":
            state_str = event.get("State", "Stopped")
            try:
                self._state = GuideState(state_str)
            except ValueError:
                self._state = GuideState.STOPPED

        elif event_type == "GuideStep":
            self._state = GuideState.GUIDING

        elif event_type == "GuidingStopped":
            self._state = GuideState.STOPPED

        elif event_type == "StarLost":
            logger.warning("Guide star lost!")
            self._state = GuideState.LOST_LOCK

        for callback in self._callbacks:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    def register_callback(self, callback: Callable):
        """Register callback for PHD2 events."""
        self._callbacks.append(callback)

    # =========================================================================
    # GUIDING CONTROL
    # =========================================================================

    async def start_guiding(self, force_calibration: bool = False,
                            reference: Optional[Any] = None) -> bool:
        """
        Start autoguiding.

        Args:
            force_calibration: Ask PHD2 to recalibrate before guiding
            reference: Exposure reference for settle timing; PHD2 settles
                on its own parameters, so it is only logged

        Returns:
            True if guiding started successfully
        """
        if reference is not None:
            logger.debug(f"Ignoring exposure reference {reference!r}")

        try:
            result = await self._send_request("guide", {
                "settle": {
                    "pixels": self.settle_pixels,
                    "time": self.settle_time,
                    "timeout": self.settle_timeout
                },
                "recalibrate": force_calibration
            })
            logger.info("Autoguiding started")
            return result == 0
        except GuiderError as e:
            logger.error(f"Failed to start guiding: {e}")
            return False

    async def stop_guiding(self) -> bool:
        """
        Stop autoguiding.

        Returns:
            True if stopped successfully
        """
        try:
            await self._send_request("stop_capture")
            self._state = GuideState.STOPPED
            logger.info("Autoguiding stopped")
            return True
        except GuiderError as e:
            logger.error(f"Failed to stop guiding: {e}")
            return False

    async def get_app_state(self) -> GuideState:
        """Query the PHD2 application state."""
        result = await self._send_request("get_app_state")
        try:
            self._state = GuideState(result)
        except ValueError:
            self._state = GuideState.STOPPED
        return self._state
