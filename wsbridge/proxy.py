"""
本地 HTTP CONNECT 代理（客户端）

浏览器/应用把本地端口当作 HTTP 代理使用，每个 CONNECT 请求对应一条隧道:

    应用 --CONNECT host:port--> LocalProxy --WebSocket(X-Target, X-Password)--> BridgeServer --TCP--> host:port

使用示例:
    from wsbridge import LocalProxy, ProxyConfig

    proxy = LocalProxy(ProxyConfig(server="bridge.example.com", password="s3cr3t"))
    await proxy.serve_forever()
"""

import asyncio
import logging
from dataclasses import dataclass, field

import websockets
from websockets.exceptions import InvalidHandshake, InvalidStatus

from .broker import TcpConnection
from .channel import WebsocketsChannel
from .config import ProxyConfig
from .protocol import (
    CONNECT_BAD_REQUEST,
    CONNECT_ESTABLISHED,
    CONNECT_UNAVAILABLE,
    build_tunnel_headers,
)
from .session import RelaySession

logger = logging.getLogger(__name__)

# 请求头最大长度
MAX_REQUEST_HEAD = 64 * 1024


@dataclass
class ProxyRequest:
    """解析后的代理请求头"""

    method: str
    target: str
    version: str
    headers: dict[str, str] = field(default_factory=dict)


def parse_request_head(head: bytes) -> ProxyRequest:
    """
    解析 HTTP 请求头

    Args:
        head: 以 \\r\\n\\r\\n 结尾的原始请求头

    Returns:
        ProxyRequest

    Raises:
        ValueError: 请求行格式错误
    """
    lines = head.decode("latin-1").split("\r\n")
    parts = lines[0].split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise ValueError(f"Invalid request line: {lines[0]!r}")

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise ValueError(f"Invalid header line: {line!r}")
        headers[name.strip().lower()] = value.strip()

    method, target, version = parts
    return ProxyRequest(method=method.upper(), target=target, version=version, headers=headers)


class LocalProxy:
    """
    本地 HTTP CONNECT 代理

    非 CONNECT 请求返回 503；CONNECT 请求先回复 200，再通过 WebSocket
    连接服务端，握手失败时仅断开当前连接。
    """

    def __init__(self, config: ProxyConfig, connect=None):
        """
        初始化代理

        Args:
            config: 代理配置
            connect: WebSocket 连接函数（默认 websockets.connect，测试时可替换）
        """
        self.config = config
        self._connect = connect or websockets.connect
        self._server: asyncio.Server | None = None

        # session_id → RelaySession
        self._sessions: dict[str, RelaySession] = {}

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    @property
    def port(self) -> int | None:
        """实际监听端口（配置为 0 时由系统分配）"""
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """开始监听"""
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self.config.listen_host,
            port=self.config.port,
            limit=MAX_REQUEST_HEAD,
        )
        logger.info(f"开启HTTP代理: {self.config.listen_host}:{self.port}")
        logger.info(f"  服务端: {self.config.server_url}")

    async def serve_forever(self) -> None:
        """监听并处理连接，直到被取消"""
        if not self._server:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def close(self) -> None:
        """停止监听并关闭所有会话"""
        sessions = list(self._sessions.values())
        if sessions:
            await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)
        if self._server:
            # wait_closed() 会等待已有连接结束，先关闭会话
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        logger.info("HTTP代理已关闭")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """处理一个本地客户端连接"""
        peer = writer.get_extra_info("peername")
        client = TcpConnection(reader=reader, writer=writer, label=str(peer))

        try:
            head = await reader.readuntil(b"\r\n\r\n")
            request = parse_request_head(head)
        except (ValueError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            logger.debug(f"无效的代理请求: {peer}, {e!r}")
            await self._reply_and_close(client, CONNECT_BAD_REQUEST)
            return

        if request.method != "CONNECT":
            logger.debug(f"不支持的请求方法: {peer}, {request.method}")
            await self._reply_and_close(client, CONNECT_UNAVAILABLE)
            return

        client.label = request.target
        try:
            await client.write(CONNECT_ESTABLISHED)
        except OSError as e:
            logger.debug(f"回复客户端失败: {peer}, {e!r}")
            await client.close()
            return

        logger.info(f"访问: {request.target}")

        try:
            websocket = await self._open_tunnel(request.target)
        except InvalidStatus as e:
            body = e.response.body.decode("utf-8", errors="replace") if e.response.body else ""
            logger.error(f"连接websocket出错: {e.response.status_code} {body}")
            await client.close()
            return
        except (OSError, asyncio.TimeoutError, InvalidHandshake) as e:
            logger.error(f"连接websocket出错: {e!r}")
            await client.close()
            return

        session = RelaySession(
            channel=WebsocketsChannel(websocket, label=request.target),
            tcp=client,
            chunk_size=self.config.chunk_size,
        )
        self._sessions[session.id] = session
        try:
            await session.run()
        finally:
            self._sessions.pop(session.id, None)

    async def _open_tunnel(self, target: str):
        """建立到服务端的 WebSocket 连接"""
        return await self._connect(
            self.config.server_url,
            additional_headers=build_tunnel_headers(target, self.config.password),
            open_timeout=self.config.handshake_timeout,
            max_size=None,
        )

    @staticmethod
    async def _reply_and_close(client: TcpConnection, response: bytes) -> None:
        try:
            await client.write(response)
        except OSError as e:
            logger.debug(f"回复客户端失败: {client.label}, {e!r}")
        await client.close()
