"""解析服务 — CLI 和 Web 共享的解析流程

把「构建根节点 → 加载依赖 → 处理显式请求 → 校验 peer 依赖」的编排
从 CLI/Web 中提取出来，两处只负责输入输出。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pkgtree.core.config import Config, get_config
from pkgtree.core.fetch import RegistryFetcher, RegistryIndex
from pkgtree.core.models import PackageMeta, TreeNode
from pkgtree.core.protocols import MetadataFetcher, SnapshotSource
from pkgtree.core.tree.dump import tree_to_dict
from pkgtree.core.tree.loader import DepLoader

logger = logging.getLogger(__name__)


@dataclass
class ResolveRequest:
    """解析请求 DTO"""

    manifest: dict[str, Any]
    project_dir: str = "."
    include_dev: bool = True
    install: list[str] = field(default_factory=list)  # 用户显式请求的 name@range
    save: bool = False
    remove: list[str] = field(default_factory=list)


@dataclass
class ResolveReport:
    """解析结果"""

    tree: TreeNode
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"tree": tree_to_dict(self.tree), "warnings": list(self.warnings)}


class ResolveService:
    """依赖树解析服务"""

    def __init__(
        self,
        fetcher: MetadataFetcher,
        snapshot_source: SnapshotSource | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or get_config()
        self.loader = DepLoader(fetcher, snapshot_source, self.config)

    @classmethod
    def from_registry_file(
        cls, registry_file: str = "", config: Config | None = None,
    ) -> ResolveService:
        cfg = config or get_config()
        packages = RegistryIndex(Path(registry_file or cfg.registry_file)).load()
        return cls(RegistryFetcher(packages), config=cfg)

    def resolve(self, req: ResolveRequest) -> ResolveReport:
        """解析清单为安装树；硬失败以 PkgTreeError 抛给调用方"""
        package = PackageMeta.from_manifest(req.manifest)
        root = TreeNode.root(package, os.path.abspath(req.project_dir))
        logger.info(
            "开始解析 %s (%d 个依赖, %d 个开发依赖)",
            root.display_name, len(package.dependencies), len(package.dev_dependencies),
        )

        self.loader.load_deps(root)
        if req.include_dev:
            self.loader.load_dev_deps(root)
        if req.remove:
            self.loader.remove_deps(req.remove, root)
        if req.install:
            self.loader.load_requested_deps(req.install, root, save=req.save)

        warnings = self.loader.validate_peer_deps(root)
        total = sum(1 for _ in root.walk()) - 1
        logger.info("解析完成: %d 个节点, %d 条告警", total, len(warnings))
        return ResolveReport(tree=root, warnings=warnings)
