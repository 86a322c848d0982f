"""
wsbridge 命令行工具

使用示例:
    # 启动服务端（密码也可通过 WSBRIDGE_PASSWORD 环境变量提供）
    wsbridge serve --port 8000 --password s3cr3t

    # 关闭认证需要显式传入空密码
    wsbridge serve --password ""

    # 启动本地 HTTP 代理
    wsbridge proxy --port 8080 --server bridge.example.com --password s3cr3t
"""

import asyncio
import logging
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import BridgeServerConfig, ProxyConfig

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """配置日志"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def _options(**values) -> dict:
    """去掉未在命令行指定的参数，交给环境变量 / .env 决定"""
    return {key: value for key, value in values.items() if value is not None}


def _fail(error: ValidationError) -> None:
    console.print("[red]✗[/red] 配置错误:")
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"])
        console.print(f"  {field}: {item['msg']}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """wsbridge - WebSocket ↔ TCP 转发隧道"""
    pass


@main.command()
@click.option("--host", "-h", default=None, help="监听地址")
@click.option("--port", "-p", type=int, default=None, help="监听端口")
@click.option("--password", "-P", default=None, help="共享密码（空字符串表示不校验）")
@click.option("--path", "ws_path", default=None, help="WebSocket 路径")
@click.option("--chunk", type=int, default=None, help="TCP 读取块大小（KB，1-1024）")
@click.option("--connect-timeout", type=float, default=None, help="连接目标超时（秒）")
@click.option("--idle-timeout", type=float, default=None, help="会话空闲超时（秒）")
@click.option("--verbose", "-v", is_flag=True, help="详细日志")
def serve(
    host: str | None,
    port: int | None,
    password: str | None,
    ws_path: str | None,
    chunk: int | None,
    connect_timeout: float | None,
    idle_timeout: float | None,
    verbose: bool,
):
    """启动 wsbridge 服务端"""
    setup_logging(verbose)

    try:
        config = BridgeServerConfig(
            **_options(
                host=host,
                port=port,
                password=password,
                ws_path=ws_path,
                chunk_size_kb=chunk,
                connect_timeout=connect_timeout,
                idle_timeout=idle_timeout,
            )
        )
    except ValidationError as e:
        _fail(e)
        return

    console.print(f"[bold blue]wsbridge Server v{__version__}[/bold blue]")
    console.print(f"  监听: {config.host}:{config.port}")
    console.print(f"  WebSocket: {config.ws_path}")
    if config.auth_enabled:
        console.print("  认证: 开启")
    else:
        console.print("  [yellow]认证: 关闭（密码为空）[/yellow]")
    console.print()

    from .app import run_app

    run_app(config)


@main.command()
@click.option("--host", "-h", "listen_host", default=None, help="监听地址")
@click.option("--port", "-p", type=int, default=None, help="HTTP代理端口（1-65535）")
@click.option("--server", "-s", default=None, help="websocket地址，[域名]:[端口][/路径]")
@click.option("--password", "-P", default=None, help="共享密码")
@click.option("--chunk", type=int, default=None, help="websocket每一帧的数据大小（KB，1-1024）")
@click.option("--insecure-ws", is_flag=True, help="使用 ws:// 而不是 wss://")
@click.option("--verbose", "-v", is_flag=True, help="详细日志")
def proxy(
    listen_host: str | None,
    port: int | None,
    server: str | None,
    password: str | None,
    chunk: int | None,
    insecure_ws: bool,
    verbose: bool,
):
    """启动本地 HTTP CONNECT 代理"""
    setup_logging(verbose)

    try:
        config = ProxyConfig(
            **_options(
                listen_host=listen_host,
                port=port,
                server=server,
                password=password,
                chunk_size_kb=chunk,
                tls=False if insecure_ws else None,
            )
        )
    except ValidationError as e:
        _fail(e)
        return

    console.print("[bold blue]wsbridge Proxy[/bold blue]")
    console.print(f"  监听: {config.listen_host}:{config.port}")
    console.print(f"  服务端: {config.server_url}")
    console.print()

    from .proxy import LocalProxy

    local_proxy = LocalProxy(config)
    try:
        asyncio.run(local_proxy.serve_forever())
    except KeyboardInterrupt:
        console.print("\n[dim]已停止[/dim]")
        sys.exit(0)


if __name__ == "__main__":
    main()
