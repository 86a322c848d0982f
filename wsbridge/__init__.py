"""
wsbridge - WebSocket ↔ TCP 转发隧道

提供：
- 服务端：校验 X-Password / X-Target 后连接目标 TCP，并在 WebSocket 与 TCP 之间转发原始字节
- 客户端：本地 HTTP CONNECT 代理，把每个 CONNECT 请求通过 WebSocket 交给服务端
- 服务端可嵌入到 FastAPI 应用，也可通过 CLI 独立运行
"""

__version__ = "0.1.0"

from .address import TargetAddress, is_valid_target, parse_target
from .auth import authorize
from .broker import ConnectionBroker, TcpConnection
from .errors import (
    AuthError,
    BridgeError,
    ConnectError,
    ProtocolError,
    TargetValidationError,
    TransportError,
)
from .session import RelaySession, SessionState
from .server import BridgeServer
from .proxy import LocalProxy
from .config import BridgeServerConfig, ProxyConfig
from .app import create_app, run_app

__all__ = [
    # 版本
    "__version__",
    # 校验
    "TargetAddress",
    "parse_target",
    "is_valid_target",
    "authorize",
    # 连接与会话
    "ConnectionBroker",
    "TcpConnection",
    "RelaySession",
    "SessionState",
    # 错误
    "BridgeError",
    "AuthError",
    "TargetValidationError",
    "ProtocolError",
    "ConnectError",
    "TransportError",
    # 服务端
    "BridgeServer",
    "BridgeServerConfig",
    # 客户端
    "LocalProxy",
    "ProxyConfig",
    # 应用
    "create_app",
    "run_app",
]
