"""本地注册表

注册表是一份 YAML 文件，结构如下:

    packages:
      left-pad:
        dist-tags:
          latest: "1.3.0"
        versions:
          "1.1.0": {}
          "1.3.0":
            dependencies: {...}
            bin: {...}

版本号建议加引号，避免 YAML 把 1.0 读成浮点数；加载时统一转为字符串。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pkgtree.core.exceptions import ConfigError
from pkgtree.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


class RegistryIndex:
    """注册表 - 从 YAML 文件加载各包的全部版本清单"""

    def __init__(self, registry_path: Path) -> None:
        self.registry_path = registry_path

    def load(self) -> dict[str, dict[str, Any]]:
        """返回 {name: {"dist-tags": {...}, "versions": {version: manifest}}}"""
        if not self.registry_path.exists():
            logger.warning("注册表文件不存在: %s", self.registry_path)
            return {}
        packages = self.normalize(load_yaml(self.registry_path))
        logger.info("已加载 %d 个包 (%s)", len(packages), self.registry_path)
        return packages

    @staticmethod
    def normalize(data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        """校验并规整注册表数据（也供 Web 层直接传入的字典使用）"""
        section = data.get("packages") or {}
        if not isinstance(section, dict):
            raise ConfigError("注册表 packages 段必须是字典")

        packages: dict[str, dict[str, Any]] = {}
        for name, info in section.items():
            if info is None:
                continue
            if not isinstance(info, dict):
                raise ConfigError(f"注册表条目无效: {name}")
            versions = {
                str(ver): (manifest or {})
                for ver, manifest in (info.get("versions") or {}).items()
            }
            tags = {
                str(tag): str(ver)
                for tag, ver in (info.get("dist-tags") or {}).items()
            }
            packages[str(name)] = {"dist-tags": tags, "versions": versions}
        return packages
