"""CLI — HTTP 服务"""

from __future__ import annotations

import click


def register(group: click.Group) -> None:
    group.add_command(serve)


@click.command()
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.option("--port", default=8730, help="监听端口")
def serve(host: str, port: int) -> None:
    """启动解析 HTTP API"""
    from pkgtree.web.app import run_server
    run_server(host=host, port=port)
