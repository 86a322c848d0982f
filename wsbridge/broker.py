"""
目标 TCP 连接

ConnectionBroker 负责为已校验的目标地址建立一次出站 TCP 连接（失败不重试），
返回的 TcpConnection 由会话独占，close() 可重复调用。
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime

from .address import TargetAddress
from .errors import ConnectError

logger = logging.getLogger(__name__)


@dataclass
class TcpConnection:
    """TCP 连接句柄（读端 + 写端）"""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    label: str
    created_at: datetime = field(default_factory=datetime.now)
    closed: bool = False
    eof_sent: bool = False

    async def read(self, size: int) -> bytes:
        """读取最多 size 字节，返回 b"" 表示对端已关闭"""
        return await self.reader.read(size)

    async def write(self, data: bytes) -> None:
        """写入数据并等待缓冲区排空"""
        self.writer.write(data)
        await self.writer.drain()

    async def end(self) -> None:
        """半关闭：向对端发送 EOF，而不是直接断开"""
        if self.closed or self.eof_sent or self.writer.is_closing():
            return
        self.eof_sent = True
        if self.writer.can_write_eof():
            try:
                self.writer.write_eof()
            except OSError as e:
                logger.debug(f"发送 EOF 失败: {self.label}, {e}")

    async def close(self) -> None:
        """关闭连接（幂等）"""
        if self.closed:
            return
        self.closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"关闭 TCP 连接出错: {self.label}, {e!r}")
        logger.debug(f"TCP 连接已关闭: {self.label}")


class ConnectionBroker:
    """
    出站连接器

    每次 open() 只发起一次连接尝试；拒绝、不可达、超时、DNS 解析失败
    都会转换为带有原始异常的 ConnectError。
    """

    def __init__(self, connect_timeout: float | None = 10.0):
        self.connect_timeout = connect_timeout

    async def open(self, target: TargetAddress) -> TcpConnection:
        """
        建立到目标的 TCP 连接

        Args:
            target: 已校验的目标地址

        Returns:
            TcpConnection

        Raises:
            ConnectError: 连接失败
        """
        if target.is_ipv4:
            # 语法合法但数值越界的 IPv4（如 256.1.1.1）不发起连接
            try:
                ipaddress.IPv4Address(target.host)
            except ValueError as e:
                raise ConnectError(target, e) from e

        logger.debug(f"正在连接目标: {target}")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(target.host, target.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"连接目标失败: {target}, {e!r}")
            raise ConnectError(target, e) from e

        logger.info(f"已连接目标: {target}")
        return TcpConnection(reader=reader, writer=writer, label=str(target))
