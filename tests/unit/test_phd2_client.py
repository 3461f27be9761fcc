"""
TEMPFOCUS PHD2 Client Unit Tests
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from services.guiding.phd2_client import GuiderInfo, GuideState, PHD2Client
from tempfocus.config import GuiderConfig
from tempfocus.exceptions import GuiderError


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def client():
    """Create a PHD2 client instance."""
    return PHD2Client()


@pytest.fixture
def custom_client():
    """Create a PHD2 client with custom settings."""
    return PHD2Client(host="192.168.1.100", port=4401)


class FakePHD2Server:
    """Minimal PHD2 socket server answering every request with result 0."""

    def __init__(self):
        self.requests = []
        self.server = None
        self.port = None
        self.error_methods = set()

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self):
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader, writer):
        writer.write(b'{"Event": "AppState", "State": "Guiding"}\r\n')
        await writer.drain()
        while True:
            line = await reader.readline()
            if not line:
                break
            request = json.loads(line.decode())
            self.requests.append(request)

            # Events may arrive between a request and its response
            writer.write(b'{"Event": "GuideStep", "Frame": 1}\r\n')
            if request["method"] in self.error_methods:
                response = {"jsonrpc": "2.0", "error": {"code": 1, "message": "nope"},
                            "id": request["id"]}
            elif request["method"] == "get_app_state":
                response = {"jsonrpc": "2.0", "result": "Looping", "id": request["id"]}
            else:
                response = {"jsonrpc": "2.0", "result": 0, "id": request["id"]}
            writer.write((json.dumps(response) + "\r\n").encode())
            await writer.drain()
        writer.close()


@pytest_asyncio.fixture
async def phd2_server():
    server = FakePHD2Server()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def connected_client(phd2_server):
    client = PHD2Client(host="127.0.0.1", port=phd2_server.port,
                        settle_pixels=1.5, settle_time=5.0, settle_timeout=30.0)
    assert await client.connect()
    yield client
    await client.disconnect()


# ============================================================================
# Construction Tests
# ============================================================================

class TestPHD2ClientInit:
    """Tests for client construction."""

    def test_defaults(self, client):
        """Verify default host and port."""
        assert client.host == "localhost"
        assert client.port == 4400
        assert client.connected is False
        assert client.state == GuideState.STOPPED

    def test_custom(self, custom_client):
        """Verify custom host and port."""
        assert custom_client.host == "192.168.1.100"
        assert custom_client.port == 4401

    def test_from_config(self):
        """Verify settings are taken from GuiderConfig."""
        config = GuiderConfig(host="phd2.local", port=4410, settle_pixels=2.0)
        client = PHD2Client.from_config(config)
        assert client.host == "phd2.local"
        assert client.port == 4410
        assert client.settle_pixels == 2.0

    def test_get_info_disconnected(self, client):
        """Verify info of a disconnected client."""
        info = client.get_info()
        assert isinstance(info, GuiderInfo)
        assert info.connected is False


# ============================================================================
# Guiding Control Tests (mocked transport)
# ============================================================================

class TestGuidingControl:
    """Tests for stop/start with a mocked request layer."""

    @pytest.mark.asyncio
    async def test_send_request_requires_connection(self, client):
        """Verify requests fail when not connected."""
        with pytest.raises(GuiderError):
            await client._send_request("get_app_state")

    @pytest.mark.asyncio
    async def test_start_guiding_params(self, client):
        """Verify guide request carries settle and recalibrate."""
        client._send_request = AsyncMock(return_value=0)
        assert await client.start_guiding(force_calibration=True) is True
        method, params = client._send_request.call_args.args
        assert method == "guide"
        assert params["recalibrate"] is True
        assert params["settle"] == {"pixels": 1.0, "time": 10.0, "timeout": 60.0}

    @pytest.mark.asyncio
    async def test_start_guiding_failure(self, client):
        """Verify PHD2 errors make start_guiding return False."""
        client._send_request = AsyncMock(side_effect=GuiderError("PHD2 error"))
        assert await client.start_guiding() is False

    @pytest.mark.asyncio
    async def test_stop_guiding(self, client):
        """Verify stop_capture is sent."""
        client._send_request = AsyncMock(return_value=0)
        assert await client.stop_guiding() is True
        client._send_request.assert_awaited_once_with("stop_capture")
        assert client.state == GuideState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_guiding_failure(self, client):
        """Verify stop_guiding returns False when not connected."""
        assert await client.stop_guiding() is False


# ============================================================================
# Event Handling Tests
# ============================================================================

class TestEventHandling:
    """Tests for PHD2 event handling."""

    @pytest.mark.asyncio
    async def test_app_state_event(self, client):
        """Verify AppState updates the state."""
        await client._handle_event({"Event": "AppState", "State": "Guiding"})
        assert client.state == GuideState.GUIDING

    @pytest.mark.asyncio
    async def test_unknown_app_state(self, client):
        """Verify unknown states fall back to STOPPED."""
        await client._handle_event({"Event": "AppState", "State": "Bogus"})
        assert client.state == GuideState.STOPPED

    @pytest.mark.asyncio
    async def test_star_lost(self, client):
        """Verify StarLost sets LOST_LOCK."""
        await client._handle_event({"Event": "StarLost"})
        assert client.state == GuideState.LOST_LOCK

    @pytest.mark.asyncio
    async def test_callbacks(self, client):
        """Verify sync and async callbacks receive events."""
        received = []

        async def async_callback(event):
            received.append(("async", event["Event"]))

        client.register_callback(lambda e: received.append(("sync", e["Event"])))
        client.register_callback(async_callback)
        await client._handle_event({"Event": "GuidingStopped"})

        assert received == [("sync", "GuidingStopped"), ("async", "GuidingStopped")]


# ============================================================================
# Socket Tests
# ============================================================================

class TestSocketRoundTrip:
    """Tests against a fake PHD2 server."""

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        """Verify connect returns False when PHD2 is not running."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        client = PHD2Client(host="127.0.0.1", port=port)
        assert await client.connect() is False

    @pytest.mark.asyncio
    async def test_stop_and_start(self, connected_client, phd2_server):
        """Verify stop and start reach the server in order."""
        assert await connected_client.stop_guiding() is True
        assert await connected_client.start_guiding() is True

        methods = [r["method"] for r in phd2_server.requests]
        assert methods == ["stop_capture", "guide"]
        assert phd2_server.requests[1]["params"]["settle"]["pixels"] == 1.5
        assert phd2_server.requests[1]["params"]["recalibrate"] is False

    @pytest.mark.asyncio
    async def test_get_app_state(self, connected_client):
        """Verify responses are matched to requests despite interleaved events."""
        state = await connected_client.get_app_state()
        assert state == GuideState.LOOPING

    @pytest.mark.asyncio
    async def test_error_response(self, connected_client, phd2_server):
        """Verify PHD2 error responses raise GuiderError."""
        phd2_server.error_methods.add("get_app_state")
        with pytest.raises(GuiderError):
            await connected_client.get_app_state()

    @pytest.mark.asyncio
    async def test_info_connected(self, connected_client):
        """Verify get_info reflects the connection."""
        assert connected_client.get_info().connected is True

    @pytest.mark.asyncio
    async def test_disconnect(self, connected_client):
        """Verify disconnect clears the connection."""
        await connected_client.disconnect()
        assert connected_client.connected is False
        assert connected_client.get_info().connected is False
