"""包元数据来源

- registry.py: 注册表加载
- fetcher.py:  按 name@range 选出版本并返回元数据
- snapshot.py: 相邻 shrinkwrap 文件读取
"""

from pkgtree.core.fetch.fetcher import RegistryFetcher
from pkgtree.core.fetch.registry import RegistryIndex
from pkgtree.core.fetch.snapshot import FileSnapshotSource

__all__ = [
    "FileSnapshotSource",
    "RegistryFetcher",
    "RegistryIndex",
]
