"""
wsbridge 错误定义

握手阶段的错误（AuthError / TargetValidationError / ProtocolError / ConnectError）
会被转换为 HTTP 400 响应；会话建立后的错误（TransportError）只会触发会话关闭，
不会再回传给客户端。
"""

from typing import TYPE_CHECKING

from .protocol import ErrorMessage

if TYPE_CHECKING:
    from .address import TargetAddress


class BridgeError(Exception):
    """所有 wsbridge 错误的基类"""

    status_code: int = 400
    default_message: str = ErrorMessage.INTERNAL.value

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(BridgeError):
    """密码不匹配"""

    default_message = ErrorMessage.AUTH.value


class TargetValidationError(BridgeError):
    """X-Target 缺失或格式错误"""

    default_message = ErrorMessage.TARGET.value

    def __init__(self, raw: str | None, message: str | None = None):
        self.raw = raw
        super().__init__(message)


class ProtocolError(BridgeError):
    """不是 WebSocket 升级请求"""

    default_message = ErrorMessage.PROTOCOL.value


class ConnectError(BridgeError):
    """目标 TCP 连接建立失败（不重试）"""

    def __init__(self, target: "TargetAddress", cause: BaseException):
        self.target = target
        self.cause = cause
        super().__init__(f"{ErrorMessage.CONNECT.value}: {describe_cause(cause)}")


class TransportError(BridgeError):
    """会话建立后，某一侧传输层读写失败"""


def describe_cause(cause: BaseException) -> str:
    """把底层异常转成一行可读文本（部分异常的 str() 为空）"""
    text = str(cause)
    if text:
        return text
    return type(cause).__name__
