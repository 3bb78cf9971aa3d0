"""shrinkwrap 冻结快照展开

两个入口:
  - read_adjacent(): 读取节点目录下的 npm-shrinkwrap.json。文件缺失、读取失败、
    内容无法解析都只当作 "没有快照"，不会中断解析。
  - inflate(): 把快照中的依赖逐层展开为真实的子节点。快照条目本身无效属于硬失败，
    异常沿节点链向上传播。
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from pkgtree.core.config import Config
from pkgtree.core.exceptions import FetchError, PkgTreeError, ShrinkwrapError
from pkgtree.core.models import TreeNode
from pkgtree.core.protocols import MetadataFetcher, SnapshotSource
from pkgtree.core.tree.nodes import attach_child, detach

logger = logging.getLogger(__name__)


class ShrinkwrapInflater:
    """shrinkwrap 快照读取与展开"""

    def __init__(
        self,
        fetcher: MetadataFetcher,
        snapshot_source: SnapshotSource,
        config: Config,
    ) -> None:
        self.fetcher = fetcher
        self.snapshot_source = snapshot_source
        self.config = config

    def read_adjacent(self, node: TreeNode) -> dict[str, Any] | None:
        """读取 node 目录下的快照文件，并记录到节点上

        无论结果如何都会把 node.shrinkwrap_checked 置为 True。

        参数:
            node: 磁盘上已存在的节点

        返回:
            dict | None: 解析后的快照；禁用、缺失或无法解析时为 None
        """
        node.shrinkwrap_checked = True
        if not self.config.use_shrinkwrap:
            return None

        path = os.path.join(node.path, self.config.shrinkwrap_file)
        data = self.snapshot_source.read(path)
        if data is None:
            return None
        try:
            parsed = json.loads(data)
        except ValueError:
            logger.debug("shrinkwrap 无法解析，按无快照处理: %s", path)
            return None
        if not isinstance(parsed, dict):
            logger.debug("shrinkwrap 顶层不是对象，按无快照处理: %s", path)
            return None

        node.shrinkwrap = parsed
        return parsed

    def inflate(self, node: TreeNode, deps: Any) -> None:
        """把快照依赖表展开为 node 的子节点

        已有同名子节点且来自 bundle、已由快照展开或版本一致时直接沿用，
        否则按快照中的精确版本重新拉取并挂载。

        参数:
            node: 快照所属节点
            deps: 快照中的 dependencies 表 {name: {"version": ..., "dependencies": {...}}}

        异常:
            ShrinkwrapError: 依赖表或条目无效
            FetchError: 拉取快照指定的版本失败（含底层 IO 错误）
            以上异常的 required_by 都会追加 node
        """
        if not self.config.use_shrinkwrap:
            return
        try:
            if not isinstance(deps, dict):
                raise ShrinkwrapError(
                    f"shrinkwrap 依赖表无效: {node.display_name} "
                    f"(期望对象, 实际 {type(deps).__name__})"
                )
            for name in sorted(deps):
                self._inflate_entry(node, name, deps[name])
        except PkgTreeError as exc:
            exc.add_parent(node.display_name)
            raise

    def _inflate_entry(self, node: TreeNode, name: str, entry: Any) -> None:
        if not isinstance(entry, dict):
            raise ShrinkwrapError(f"shrinkwrap 条目无效: {name}")
        version = entry.get("version")
        if not isinstance(version, str) or not version.strip():
            raise ShrinkwrapError(f"shrinkwrap 条目缺少 version: {name}")

        spec = f"{name}@{version.strip()}"
        existing = next((c for c in node.children if c.name == name), None)
        if existing is not None and (
            existing.from_bundle
            or existing.from_shrinkwrap
            or existing.version == version
        ):
            if not existing.from_shrinkwrap:
                existing.from_shrinkwrap = spec
            return

        if existing is not None:
            logger.info(
                "shrinkwrap 替换 %s -> %s (位于 %s)",
                existing.display_name, spec, node.display_name,
            )
            detach(existing)

        try:
            pkg = self.fetcher.fetch(spec, node.path)
        except OSError as e:
            raise FetchError(f"拉取 {spec} 失败: {e}") from e
        child = attach_child(node, pkg, self.config.modules_dir)
        child.from_shrinkwrap = spec
        logger.debug("shrinkwrap 展开: %s -> %s", spec, child.path)
        self.inflate(child, entry.get("dependencies") or {})
