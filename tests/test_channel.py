"""
消息通道测试
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.websockets import WebSocketState
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from wsbridge.channel import StarletteChannel, WebsocketsChannel
from wsbridge.errors import TransportError


def _starlette_websocket(*messages) -> MagicMock:
    websocket = MagicMock()
    websocket.receive = AsyncMock(side_effect=list(messages))
    websocket.send_bytes = AsyncMock()
    websocket.close = AsyncMock()
    websocket.application_state = WebSocketState.CONNECTED
    websocket.client_state = WebSocketState.CONNECTED
    return websocket


class TestStarletteChannel:
    """测试服务端通道"""

    @pytest.mark.asyncio
    async def test_receive_binary_and_text(self):
        websocket = _starlette_websocket(
            {"type": "websocket.receive", "bytes": b"\x01\x02"},
            {"type": "websocket.receive", "text": "hello"},
            {"type": "websocket.disconnect", "code": 1000},
        )
        channel = StarletteChannel(websocket)

        assert await channel.receive() == b"\x01\x02"
        assert await channel.receive() == "hello"
        assert await channel.receive() is None

    @pytest.mark.asyncio
    async def test_abnormal_disconnect(self):
        """异常断开抛出 TransportError"""
        websocket = _starlette_websocket({"type": "websocket.disconnect", "code": 1006})
        channel = StarletteChannel(websocket)

        with pytest.raises(TransportError):
            await channel.receive()

    @pytest.mark.asyncio
    async def test_send_binary(self):
        websocket = _starlette_websocket()
        channel = StarletteChannel(websocket)

        await channel.send(b"data")

        websocket.send_bytes.assert_awaited_once_with(b"data")

    @pytest.mark.asyncio
    async def test_close_once(self):
        websocket = _starlette_websocket()
        channel = StarletteChannel(websocket)

        await channel.close()
        await channel.close()

        websocket.close.assert_awaited_once()
        assert channel.closed is True

    @pytest.mark.asyncio
    async def test_close_after_client_disconnect(self):
        """客户端已断开时不再发送关闭帧"""
        websocket = _starlette_websocket()
        websocket.client_state = WebSocketState.DISCONNECTED
        channel = StarletteChannel(websocket)

        await channel.close()

        websocket.close.assert_not_called()
        assert channel.closed is True

    @pytest.mark.asyncio
    async def test_close_race(self):
        """关闭过程中对端断开"""
        websocket = _starlette_websocket()
        websocket.close = AsyncMock(side_effect=RuntimeError("already closed"))
        channel = StarletteChannel(websocket)

        await channel.close()

        assert channel.closed is True


class TestWebsocketsChannel:
    """测试客户端通道"""

    @pytest.mark.asyncio
    async def test_receive(self):
        websocket = MagicMock()
        websocket.recv = AsyncMock(
            side_effect=[b"bin", "text", ConnectionClosedOK(Close(1000, ""), Close(1000, ""))]
        )
        channel = WebsocketsChannel(websocket)

        assert await channel.receive() == b"bin"
        assert await channel.receive() == "text"
        assert await channel.receive() is None

    @pytest.mark.asyncio
    async def test_receive_error(self):
        websocket = MagicMock()
        websocket.recv = AsyncMock(
            side_effect=ConnectionClosedError(Close(1011, "internal error"), None)
        )
        channel = WebsocketsChannel(websocket)

        with pytest.raises(TransportError):
            await channel.receive()

    @pytest.mark.asyncio
    async def test_send_after_close(self):
        websocket = MagicMock()
        websocket.send = AsyncMock(
            side_effect=ConnectionClosedOK(Close(1000, ""), Close(1000, ""))
        )
        channel = WebsocketsChannel(websocket)

        with pytest.raises(TransportError):
            await channel.send(b"late")

    @pytest.mark.asyncio
    async def test_close_once(self):
        websocket = MagicMock()
        websocket.close = AsyncMock()
        channel = WebsocketsChannel(websocket)

        await channel.close()
        await channel.close()

        websocket.close.assert_awaited_once()
