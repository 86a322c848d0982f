"""
数据转发泵

每个会话有两个方向相反的转发泵，各自独立运行:
- TCP → WS: 从 TCP 读取数据块，每块作为一个二进制帧发出；
  TCP 读到 EOF 时关闭 WebSocket
- WS → TCP: 接收 WebSocket 消息，二进制帧原样写入 TCP，文本帧直接丢弃；
  WebSocket 正常关闭时向 TCP 发送 EOF

任一方向出错都只记录日志并结束本方向，由会话负责关闭两端。
同一方向内的数据严格保序，除了当前正在发送的一个数据块外不做额外缓冲。
"""

import logging
from typing import Callable

from .broker import TcpConnection
from .channel import MessageChannel

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


async def pump_tcp_to_ws(
    tcp: TcpConnection,
    channel: MessageChannel,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_activity: Callable[[], None] | None = None,
) -> None:
    """把 TCP 数据转发到 WebSocket"""
    sequence = 0
    try:
        while True:
            data = await tcp.read(chunk_size)
            if not data:
                logger.debug(f"TCP 对端关闭: {tcp.label}")
                break

            await channel.send(data)
            sequence += 1
            if on_activity:
                on_activity()
            logger.debug(f"TCP->WS: {tcp.label}, size={len(data)}, seq={sequence}")
    except Exception as e:
        logger.debug(f"TCP->WS 转发中断: {tcp.label}, {e!r}")
    finally:
        await channel.close()


async def pump_ws_to_tcp(
    channel: MessageChannel,
    tcp: TcpConnection,
    on_activity: Callable[[], None] | None = None,
) -> None:
    """把 WebSocket 二进制帧转发到 TCP"""
    try:
        while True:
            data = await channel.receive()
            if data is None:
                logger.debug(f"WebSocket 对端关闭: {tcp.label}")
                await tcp.end()
                return

            if isinstance(data, str):
                # 文本帧不转发
                logger.debug(f"丢弃文本帧: {tcp.label}, size={len(data)}")
                continue

            await tcp.write(data)
            if on_activity:
                on_activity()
            logger.debug(f"WS->TCP: {tcp.label}, size={len(data)}")
    except Exception as e:
        logger.debug(f"WS->TCP 转发中断: {tcp.label}, {e!r}")
