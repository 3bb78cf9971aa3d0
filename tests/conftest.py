"""测试共享 fixture: 树构建器、内存注册表与内存快照源

  trees.root(deps={...})            构建根节点（项目清单）
  trees.add(parent, "x", "1.0.0")   在 parent 的 node_modules 下挂一个已安装节点
  make_loader({"x": {...}})         基于内存注册表构建 DepLoader
  snapshots.files[path] = b"..."    伪造相邻的 npm-shrinkwrap.json

注意: 子节点只持有父节点的弱引用，测试中必须保留根节点变量。
"""

from __future__ import annotations

import os
from typing import Any

import pytest

from pkgtree.core.config import Config
from pkgtree.core.fetch import RegistryFetcher, RegistryIndex
from pkgtree.core.models import PackageMeta, RequestedSpec, TreeNode
from pkgtree.core.spec import parse_spec
from pkgtree.core.tree.loader import DepLoader
from pkgtree.core.tree.nodes import attach_child

ROOT_PATH = os.path.abspath(os.sep + "proj")


class MemorySnapshots:
    """SnapshotSource 的内存实现，记录每次读取的路径"""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.reads: list[str] = []

    def read(self, path: str) -> bytes | None:
        self.reads.append(path)
        return self.files.get(path)


class TreeFactory:
    """手工搭建 "已安装" 的树"""

    def root(
        self,
        deps: dict[str, str] | None = None,
        dev: dict[str, str] | None = None,
        *,
        name: str = "app",
        version: str = "1.0.0",
        **manifest: Any,
    ) -> TreeNode:
        data = {"name": name, "version": version, "dependencies": deps or {},
                "devDependencies": dev or {}, **manifest}
        return TreeNode.root(PackageMeta.from_manifest(data), ROOT_PATH)

    def add(
        self,
        parent: TreeNode,
        name: str,
        version: str,
        deps: dict[str, str] | None = None,
        *,
        requested: str | None = None,
        loaded: bool = True,
        **manifest: Any,
    ) -> TreeNode:
        data = {"name": name, "version": version, "dependencies": deps or {}, **manifest}
        pkg = PackageMeta.from_manifest(data)
        child = attach_child(parent, pkg, "node_modules")
        if requested is not None:
            child.requested = parse_spec(f"{name}@{requested}")
        child.loaded = loaded
        return child


@pytest.fixture()
def trees() -> TreeFactory:
    return TreeFactory()


@pytest.fixture()
def snapshots() -> MemorySnapshots:
    return MemorySnapshots()


@pytest.fixture()
def make_loader(snapshots: MemorySnapshots):
    """DepLoader 工厂: make_loader(packages, max_workers=4, ...)"""

    def _make(packages: dict[str, Any], **config: Any) -> DepLoader:
        fetcher = RegistryFetcher(RegistryIndex.normalize({"packages": packages}))
        config.setdefault("max_workers", 4)
        return DepLoader(fetcher, snapshots, Config(**config))

    return _make


@pytest.fixture()
def req():
    """req("x", "range", "^1.0.0") 快捷构造 RequestedSpec"""

    def _req(name: str, type_: str, spec: str) -> RequestedSpec:
        return RequestedSpec(name=name, type=type_, spec=spec)

    return _req
