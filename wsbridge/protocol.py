"""
wsbridge 协议定义

握手阶段（HTTP 升级请求）:
- X-Password: 共享密码
- X-Target: 目标地址，格式 host:port
- Upgrade: 必须为 websocket（不区分大小写）

数据阶段:
- 二进制帧: 每一帧对应一段原样转发的 TCP 数据（双向）
- 文本帧: 协议上允许，但服务端直接丢弃，不转发也不报错
"""

from enum import Enum


class Header(str, Enum):
    """握手请求头"""

    PASSWORD = "X-Password"
    TARGET = "X-Target"
    UPGRADE = "Upgrade"


class ErrorMessage(str, Enum):
    """握手失败时返回的响应体（状态码统一为 400）"""

    AUTH = "密码错误"
    TARGET = "访问目标错误"
    PROTOCOL = "不支持websocket"
    CONNECT = "TCP连接失败"
    INTERNAL = "服务器错误"


# 本地 HTTP CONNECT 代理的响应
CONNECT_ESTABLISHED = b"HTTP/1.1 200 Connection Established\r\n\r\n"
CONNECT_UNAVAILABLE = b"HTTP/1.1 503 Service Unavailable\r\nContent-Length: 0\r\n\r\n"
CONNECT_BAD_REQUEST = b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n"


def is_websocket_upgrade(value: str | None) -> bool:
    """Upgrade 头是否为 websocket"""
    return value is not None and value.strip().lower() == "websocket"


def build_tunnel_headers(target: str, password: str) -> dict[str, str]:
    """
    构造客户端握手请求头

    Args:
        target: 目标地址 host:port
        password: 共享密码

    Returns:
        请求头字典
    """
    return {
        Header.TARGET.value: target,
        Header.PASSWORD.value: password,
    }
