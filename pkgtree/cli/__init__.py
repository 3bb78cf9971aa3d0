"""pkgtree 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import click

from pkgtree import __version__
from pkgtree.utils.logger import setup_logging_from_env


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="", help="配置文件路径（YAML）")
def main(config_path: str) -> None:
    """pkgtree - 依赖树解析与去重"""
    setup_logging_from_env()
    if config_path:
        from pkgtree.core.config import init_config
        from pkgtree.core.exceptions import PkgTreeError
        try:
            init_config(config_path)
        except PkgTreeError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


# 注册各领域子命令
from pkgtree.cli.cmd_resolve import register as _reg_resolve  # noqa: E402
from pkgtree.cli.cmd_web import register as _reg_web  # noqa: E402

_reg_resolve(main)
_reg_web(main)
