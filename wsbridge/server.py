"""
wsbridge 服务端 SDK

WebSocket → TCP 转发端点，可嵌入到 FastAPI 应用中

使用示例:
    from fastapi import FastAPI
    from wsbridge import BridgeServer, BridgeServerConfig

    app = FastAPI()
    bridge = BridgeServer(config=BridgeServerConfig(password="s3cr3t"))
    app.include_router(bridge.router)

握手流程（依次校验，任一步失败返回 400）:
    1. X-Password 与配置的密码一致（密码为空时跳过）
    2. X-Target 为合法的 host:port
    3. 请求为 WebSocket 升级请求
    4. 成功连接到目标 TCP 地址
全部通过后返回 101，随后在 WebSocket 与 TCP 之间双向转发原始字节。
"""

import asyncio
import logging
from typing import Mapping

from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import PlainTextResponse

from .address import TargetAddress, parse_target
from .auth import authorize
from .broker import ConnectionBroker
from .channel import StarletteChannel
from .config import BridgeServerConfig
from .errors import AuthError, BridgeError, ProtocolError, describe_cause
from .protocol import ErrorMessage, Header, is_websocket_upgrade
from .session import RelaySession

logger = logging.getLogger(__name__)


class BridgeServer:
    """
    转发服务器

    提供：
    1. WebSocket 端点，按请求头建立到目标的 TCP 转发会话
    2. 同一路径上的普通 HTTP 请求返回 400（非 WebSocket 升级请求）
    """

    def __init__(
        self,
        config: BridgeServerConfig,
        broker: ConnectionBroker | None = None,
    ):
        self.config = config
        self.broker = broker or ConnectionBroker(connect_timeout=config.connect_timeout)
        self.router = APIRouter(tags=["Bridge"])

        # session_id → RelaySession
        self._sessions: dict[str, RelaySession] = {}

        # 注册路由
        self._register_routes()

        if not config.auth_enabled:
            logger.warning("密码为空，已关闭认证")

    @property
    def active_sessions(self) -> int:
        """当前活跃会话数"""
        return len(self._sessions)

    async def close(self) -> None:
        """关闭服务器上所有会话"""
        sessions = list(self._sessions.values())
        if sessions:
            await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)
            logger.info(f"已关闭 {len(sessions)} 个会话")

    def _register_routes(self) -> None:
        """注册路由"""

        @self.router.websocket(self.config.ws_path)
        async def websocket_endpoint(websocket: WebSocket):
            await self._handle_websocket(websocket)

        @self.router.api_route(
            self.config.ws_path,
            methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
        )
        async def plain_request(request: Request):
            return self._handle_plain_request(request)

    def _check_request(self, headers: Mapping[str, str]) -> TargetAddress:
        """
        依次校验密码、目标地址和 Upgrade 头

        Raises:
            AuthError: 密码错误
            TargetValidationError: 目标地址缺失或非法
            ProtocolError: 不是 WebSocket 升级请求
        """
        if not authorize(headers.get(Header.PASSWORD.value), self.config.password):
            raise AuthError()
        target = parse_target(headers.get(Header.TARGET.value))
        if not is_websocket_upgrade(headers.get(Header.UPGRADE.value)):
            raise ProtocolError()
        return target

    @staticmethod
    def _error_response(error: BridgeError) -> PlainTextResponse:
        return PlainTextResponse(error.message, status_code=error.status_code)

    @staticmethod
    async def _deny(websocket: WebSocket, response: PlainTextResponse) -> None:
        """
        拒绝升级请求

        ASGI 服务器支持 websocket.http.response 扩展时直接返回 HTTP 响应，
        否则只能以 1008 关闭握手（客户端看到的是 403）。
        """
        if "websocket.http.response" in (websocket.scope.get("extensions") or {}):
            await websocket.send_denial_response(response)
        else:
            await websocket.close(code=1008)

    def _handle_plain_request(self, request: Request) -> PlainTextResponse:
        """未升级为 WebSocket 的请求：校验顺序与握手一致，即使带了 Upgrade 头也返回协议错误"""
        try:
            self._check_request(request.headers)
            raise ProtocolError()
        except BridgeError as e:
            logger.warning(f"拒绝请求: {request.client}, {e.message}")
            return self._error_response(e)

    async def _handle_websocket(self, websocket: WebSocket) -> None:
        """处理 WebSocket 升级请求"""
        try:
            target = self._check_request(websocket.headers)
            tcp = await self.broker.open(target)
        except BridgeError as e:
            logger.warning(f"拒绝连接: {websocket.client}, {e.message}")
            await self._deny(websocket, self._error_response(e))
            return
        except Exception as e:
            logger.error(f"握手处理错误: {e}", exc_info=True)
            await self._deny(
                websocket,
                PlainTextResponse(
                    f"{ErrorMessage.INTERNAL.value}: {describe_cause(e)}",
                    status_code=400,
                ),
            )
            return

        try:
            await websocket.accept()
        except Exception:
            await tcp.close()
            raise

        logger.info(f"访问: {target} (来自 {websocket.client})")

        session = RelaySession(
            channel=StarletteChannel(websocket, label=str(target)),
            tcp=tcp,
            chunk_size=self.config.chunk_size,
            idle_timeout=self.config.idle_timeout,
        )
        self._sessions[session.id] = session
        try:
            await session.run()
        finally:
            self._sessions.pop(session.id, None)
