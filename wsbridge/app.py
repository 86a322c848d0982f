"""
wsbridge Server - 独立的转发服务应用

使用示例:
    # 使用 CLI
    WSBRIDGE_PASSWORD=s3cr3t wsbridge serve --port 8000

    # 客户端握手
    GET / HTTP/1.1
    Upgrade: websocket
    X-Password: s3cr3t
    X-Target: example.com:443
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import BridgeServerConfig
from .server import BridgeServer

logger = logging.getLogger(__name__)


def create_lifespan(bridge: BridgeServer):
    """创建带有 BridgeServer 引用的 lifespan 函数"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        config = bridge.config
        logger.info("wsbridge Server 启动")
        logger.info(f"  监听: {config.host}:{config.port}")
        logger.info(f"  WebSocket: {config.ws_path}")
        logger.info(f"  认证: {'开启' if config.auth_enabled else '关闭'}")

        yield

        await bridge.close()
        logger.info("wsbridge Server 已关闭")

    return lifespan


def create_app(config: BridgeServerConfig) -> FastAPI:
    """
    创建完整的 wsbridge 应用

    Args:
        config: 服务端配置

    Returns:
        FastAPI 应用实例
    """
    bridge = BridgeServer(config=config)

    app = FastAPI(
        title="wsbridge Server",
        description="WebSocket → TCP 转发服务",
        version=__version__,
        lifespan=create_lifespan(bridge),
    )
    app.state.bridge = bridge

    @app.get("/health")
    async def health():
        """健康检查"""
        return {"status": "healthy", "active_sessions": bridge.active_sessions}

    # 转发端点可能挂在 "/" 上，放在最后注册
    app.include_router(bridge.router)

    return app


def run_app(config: BridgeServerConfig) -> None:
    """
    运行 wsbridge Server

    Args:
        config: 服务端配置
    """
    import uvicorn

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        ws_ping_interval=None,
        ws_ping_timeout=None,
    )
