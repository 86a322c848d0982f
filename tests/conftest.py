"""
测试配置和 Fixtures
"""

import asyncio
import queue
import socketserver
import threading
from typing import AsyncGenerator

import pytest

from wsbridge.broker import TcpConnection
from wsbridge.channel import MessageChannel
from wsbridge.errors import TransportError


class FakeChannel(MessageChannel):
    """
    内存中的消息通道

    incoming 中放入 bytes / str / None（对端关闭）/ 异常实例（异常断开），
    sent 记录发出的二进制帧。
    """

    def __init__(self, label: str = "fake", fail_send: bool = False):
        super().__init__(label)
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[bytes] = []
        self.close_calls = 0
        self.fail_send = fail_send

    async def receive(self) -> bytes | str | None:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, data: bytes) -> None:
        if self.fail_send or self.closed:
            raise TransportError("send failed")
        self.sent.append(data)

    async def _close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def channel_factory():
    return FakeChannel


@pytest.fixture
async def tcp_pair() -> AsyncGenerator[tuple, None]:
    """
    本地 TCP 连接对

    返回 (TcpConnection, peer_reader, peer_writer)，peer 一侧模拟目标服务
    """
    accepted: asyncio.Queue = asyncio.Queue()
    done = asyncio.Event()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        await accepted.put((reader, writer))
        await done.wait()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    peer_reader, peer_writer = await asyncio.wait_for(accepted.get(), timeout=5.0)
    conn = TcpConnection(reader=reader, writer=writer, label=f"127.0.0.1:{port}")

    yield conn, peer_reader, peer_writer

    await conn.close()
    peer_writer.close()
    done.set()
    server.close()
    await server.wait_closed()


class EchoTarget:
    """线程中运行的 TCP 回显服务（供同步的 TestClient 测试使用）"""

    def __init__(self):
        self.received: queue.Queue = queue.Queue()
        self.eof = threading.Event()
        target = self

        class Handler(socketserver.BaseRequestHandler):
            def handle(self):
                while True:
                    data = self.request.recv(65536)
                    if not data:
                        target.eof.set()
                        return
                    target.received.put(data)
                    self.request.sendall(data)

        self._server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), Handler)
        self._server.daemon_threads = True
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()

    def received_bytes(self, size: int, timeout: float = 5.0) -> bytes:
        """读取至少 size 字节"""
        data = b""
        while len(data) < size:
            data += self.received.get(timeout=timeout)
        return data


@pytest.fixture
def echo_target():
    target = EchoTarget()
    target.start()
    yield target
    target.stop()
