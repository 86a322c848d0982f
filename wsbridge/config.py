"""
wsbridge 配置
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

_SERVER_PATTERN = re.compile(r"^[a-zA-Z0-9.-]+(:\d+)?(/.*)?$")


class BridgeServerConfig(BaseSettings):
    """服务端配置"""

    # 认证：必须显式提供，空字符串表示关闭认证
    password: str = Field(..., description="共享密码（空字符串表示不校验）")

    # 监听
    host: str = Field(default="0.0.0.0", description="监听地址")
    port: int = Field(default=8000, ge=1, le=65535, description="监听端口")
    ws_path: str = Field(default="/", description="WebSocket 端点路径")

    # 转发
    chunk_size_kb: int = Field(
        default=64, ge=1, le=1024, description="TCP 每次读取的数据块大小（KB）"
    )
    connect_timeout: float = Field(default=10.0, gt=0, description="连接目标超时（秒）")
    idle_timeout: float | None = Field(
        default=None, gt=0, description="会话空闲超时（秒，不设置表示不超时）"
    )

    model_config = {
        "env_prefix": "WSBRIDGE_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def chunk_size(self) -> int:
        return self.chunk_size_kb * 1024

    @property
    def auth_enabled(self) -> bool:
        return self.password != ""


class ProxyConfig(BaseSettings):
    """本地 HTTP CONNECT 代理配置"""

    listen_host: str = Field(default="127.0.0.1", description="监听地址")
    port: int = Field(default=8080, ge=1, le=65535, description="HTTP 代理端口")

    # 服务端
    server: str = Field(..., description="websocket 地址，[域名]:[端口][/路径]")
    password: str = Field(default="", description="共享密码")
    tls: bool = Field(default=True, description="是否使用 wss://")
    handshake_timeout: float = Field(default=30.0, gt=0, description="握手超时（秒）")

    chunk_size_kb: int = Field(
        default=64, ge=1, le=1024, description="websocket 每一帧的数据大小（KB）"
    )

    model_config = {
        "env_prefix": "WSBRIDGE_PROXY_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @field_validator("server")
    @classmethod
    def _check_server(cls, value: str) -> str:
        if not _SERVER_PATTERN.match(value):
            raise ValueError("websocket 地址格式应为 [域名]:[端口][/路径]")
        return value

    @property
    def server_url(self) -> str:
        scheme = "wss" if self.tls else "ws"
        return f"{scheme}://{self.server}"

    @property
    def chunk_size(self) -> int:
        return self.chunk_size_kb * 1024
