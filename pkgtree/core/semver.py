"""版本范围判定

npm 风格的范围（^1.0.0、~1.2、>=1 <3、1.x || 2.x）由 semantic_version.NpmSpec 负责，
本模块只做容错包装：无法解析的版本或范围一律视为不满足。
"""

from __future__ import annotations

import semantic_version


def clean_version(version: str) -> str:
    """去掉 npm 允许的前缀（v1.2.3 / =1.2.3）"""
    return version.strip().lstrip("=v").strip()


def parse_version(version: str) -> semantic_version.Version | None:
    try:
        return semantic_version.Version(clean_version(version))
    except ValueError:
        return None


def parse_range(range_: str) -> semantic_version.NpmSpec | None:
    try:
        return semantic_version.NpmSpec(range_.strip() or "*")
    except ValueError:
        return None


def satisfies(version: str, range_: str) -> bool:
    """version 是否落在 range_ 内"""
    ver = parse_version(version)
    spec = parse_range(range_)
    if ver is None or spec is None:
        return False
    return spec.match(ver)


def max_satisfying(versions: list[str], range_: str) -> str | None:
    """返回满足范围的最高版本（原始字符串），无则 None"""
    spec = parse_range(range_)
    if spec is None:
        return None
    parsed = {}
    for v in versions:
        ver = parse_version(v)
        if ver is not None:
            parsed[ver] = v
    best = spec.select(parsed.keys())
    return parsed[best] if best is not None else None
