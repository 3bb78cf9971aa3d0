"""集中配置管理

提供统一的配置入口，支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from pkgtree.core.exceptions import ConfigError
from pkgtree.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """解析引擎全局配置"""

    # 注册表
    registry_file: str = "registry.yml"

    # 目录布局
    modules_dir: str = "node_modules"
    shrinkwrap_file: str = "npm-shrinkwrap.json"

    # 解析行为
    use_shrinkwrap: bool = True
    global_install: bool = False

    # 并发（元数据拉取的扇出线程数）
    max_workers: int = 8

    # Web API 可访问的项目目录根，请求中的 project_dir 不得越出此目录
    web_root: str = "."

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "pkgtree.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件内容无效: {path} - {e}") from e
        if not isinstance(cfg.max_workers, int) or cfg.max_workers < 1:
            raise ConfigError(f"max_workers 必须为正整数: {cfg.max_workers!r}")
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI / Web 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "pkgtree.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
