"""外部协作方协议

解析引擎只依赖以下抽象，不关心元数据来自注册表、缓存还是本地目录。
使用 typing.Protocol，现有类无需继承即可满足协议。
"""

from __future__ import annotations

from typing import Protocol

from pkgtree.core.models import PackageMeta


class MetadataFetcher(Protocol):
    """包元数据拉取器

    fetch 必须线程安全：同一节点的多个依赖会被并发拉取。
    失败时抛出 FetchError。
    """

    def fetch(self, spec: str, base_dir: str) -> PackageMeta:
        """按 name@range 拉取元数据，返回的 PackageMeta.requested 描述本次请求"""
        ...


class SnapshotSource(Protocol):
    """相邻冻结快照（npm-shrinkwrap.json）的读取方"""

    def read(self, path: str) -> bytes | None:
        """返回文件原始内容，文件不存在时返回 None"""
        ...
