"""
转发会话

一个会话独占一个 WebSocket 通道和一个 TCP 连接，状态流转:

    CONNECTING → OPEN → CLOSED

run() 启动两个转发泵（以及可选的空闲超时检测），任一任务结束即取消其余任务，
并通过 close() 关闭两端。close() 可被转发泵、服务端等多处并发调用，
只有第一次调用会真正执行关闭。
"""

import asyncio
import logging
import time
import uuid
from enum import Enum

from .broker import TcpConnection
from .channel import MessageChannel
from .relay import DEFAULT_CHUNK_SIZE, pump_tcp_to_ws, pump_ws_to_tcp

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """会话状态"""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class RelaySession:
    """
    WebSocket ↔ TCP 转发会话

    会话不可复用：run() 只能调用一次，结束后两端都已关闭。
    """

    def __init__(
        self,
        channel: MessageChannel,
        tcp: TcpConnection,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float | None = None,
    ):
        self.id = str(uuid.uuid4())
        self.channel = channel
        self.tcp = tcp
        self.chunk_size = chunk_size
        self.idle_timeout = idle_timeout
        self.state = SessionState.CONNECTING
        self._last_activity = time.monotonic()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    def touch(self) -> None:
        """记录一次数据传输（用于空闲超时）"""
        self._last_activity = time.monotonic()

    async def run(self) -> None:
        """运行会话直到任意一端结束"""
        if self.state != SessionState.CONNECTING:
            raise RuntimeError(f"会话不可重复运行: state={self.state.value}")

        self.state = SessionState.OPEN
        logger.info(f"会话开始: id={self.id}, target={self.tcp.label}")

        self._tasks = [
            asyncio.create_task(
                pump_tcp_to_ws(self.tcp, self.channel, self.chunk_size, self.touch),
                name=f"tcp->ws:{self.id}",
            ),
            asyncio.create_task(
                pump_ws_to_tcp(self.channel, self.tcp, self.touch),
                name=f"ws->tcp:{self.id}",
            ),
        ]
        if self.idle_timeout:
            self._tasks.append(
                asyncio.create_task(self._watch_idle(), name=f"idle:{self.id}")
            )

        try:
            await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            await self.close()

    async def close(self) -> None:
        """关闭会话两端（幂等）"""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        await self.channel.close()
        await self.tcp.close()
        logger.info(f"会话结束: id={self.id}, target={self.tcp.label}")

    async def _watch_idle(self) -> None:
        """空闲超时检测：两个方向都没有数据传输超过 idle_timeout 秒则结束"""
        while True:
            remaining = self._last_activity + self.idle_timeout - time.monotonic()
            if remaining <= 0:
                logger.info(f"会话空闲超时: id={self.id}, timeout={self.idle_timeout}s")
                return
            await asyncio.sleep(remaining)
