"""注册表元数据拉取器

按请求类型选择版本:
  - version: 精确匹配
  - range:   满足范围的最高版本
  - tag:     dist-tags 中的版本；latest 缺省时取最高版本
"""

from __future__ import annotations

import logging
from typing import Any

from pkgtree.core.exceptions import FetchError
from pkgtree.core.models import SPEC_RANGE, SPEC_VERSION, PackageMeta, RequestedSpec
from pkgtree.core.semver import clean_version, max_satisfying
from pkgtree.core.spec import parse_spec

logger = logging.getLogger(__name__)


class RegistryFetcher:
    """基于内存注册表的 MetadataFetcher 实现（只读，线程安全）"""

    def __init__(self, packages: dict[str, dict[str, Any]]) -> None:
        self.packages = packages

    def fetch(self, spec: str, base_dir: str = "") -> PackageMeta:
        requested = parse_spec(spec)
        entry = self.packages.get(requested.name)
        if entry is None:
            raise FetchError(f"包 '{requested.name}' 不在注册表中")

        version = self._pick_version(requested, entry)
        manifest = dict(entry["versions"][version])
        manifest["name"] = requested.name
        manifest["version"] = version
        logger.debug("拉取 %s -> %s (base=%s)", spec, version, base_dir or ".")
        return PackageMeta.from_manifest(manifest, requested=requested)

    @staticmethod
    def _pick_version(requested: RequestedSpec, entry: dict[str, Any]) -> str:
        versions: dict[str, Any] = entry["versions"]
        if requested.type == SPEC_VERSION:
            version = clean_version(requested.spec)
            if version not in versions:
                raise FetchError(f"版本不存在: {requested.name}@{version}")
            return version

        if requested.type == SPEC_RANGE:
            version = max_satisfying(list(versions), requested.spec)
            if version is None:
                raise FetchError(
                    f"没有满足 {requested.raw} 的版本。可用: {sorted(versions)}"
                )
            return version

        tagged = entry["dist-tags"].get(requested.spec)
        if tagged is None and requested.spec == "latest":
            tagged = max_satisfying(list(versions), "*")
        if tagged is None or tagged not in versions:
            raise FetchError(f"标签不存在: {requested.raw}")
        return tagged
