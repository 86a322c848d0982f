"""
WebSocket 消息通道

把不同库的 WebSocket 连接统一成同一个接口，供转发泵使用:
- receive(): 返回 bytes（二进制帧）、str（文本帧），对端正常关闭时返回 None，
  异常断开时抛出 TransportError
- send(data): 以二进制帧发送
- close(): 关闭连接，可重复调用

服务端使用 FastAPI/Starlette 的 WebSocket，本地代理使用 websockets 客户端连接。
"""

import logging

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from .errors import TransportError

logger = logging.getLogger(__name__)

# 1005 表示对端未携带关闭码，也视为正常关闭
NORMAL_CLOSE_CODES = frozenset({1000, 1001, 1005})


class MessageChannel:
    """消息通道基类"""

    def __init__(self, label: str = ""):
        self.label = label
        self.closed = False

    async def receive(self) -> bytes | str | None:
        raise NotImplementedError

    async def send(self, data: bytes) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """关闭通道（幂等，只有第一次调用会真正关闭）"""
        if self.closed:
            return
        self.closed = True
        await self._close()
        logger.debug(f"WebSocket 已关闭: {self.label}")

    async def _close(self) -> None:
        raise NotImplementedError


class StarletteChannel(MessageChannel):
    """服务端通道（已 accept 的 FastAPI WebSocket）"""

    def __init__(self, websocket: WebSocket, label: str = ""):
        super().__init__(label)
        self._websocket = websocket

    async def receive(self) -> bytes | str | None:
        message = await self._websocket.receive()

        if message["type"] == "websocket.disconnect":
            code = message.get("code", 1000)
            if code not in NORMAL_CLOSE_CODES:
                raise TransportError(f"WebSocket 异常断开: code={code}")
            return None

        data = message.get("bytes")
        if data is not None:
            return data
        return message.get("text") or ""

    async def send(self, data: bytes) -> None:
        await self._websocket.send_bytes(data)

    async def _close(self) -> None:
        if (
            self._websocket.application_state == WebSocketState.DISCONNECTED
            or self._websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self._websocket.close()
        except (RuntimeError, WebSocketDisconnect) as e:
            # 对端在关闭握手期间已经断开
            logger.debug(f"关闭 WebSocket 出错: {self.label}, {e!r}")


class WebsocketsChannel(MessageChannel):
    """客户端通道（websockets.connect 返回的连接）"""

    def __init__(self, websocket, label: str = ""):
        super().__init__(label)
        self._websocket = websocket

    async def receive(self) -> bytes | str | None:
        try:
            return await self._websocket.recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosedError as e:
            raise TransportError(f"WebSocket 异常断开: {e}") from e

    async def send(self, data: bytes) -> None:
        try:
            await self._websocket.send(data)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket 已断开: {e}") from e

    async def _close(self) -> None:
        await self._websocket.close()
