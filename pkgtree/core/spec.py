"""依赖描述符解析

把 "name@rangeOrVersion" 字面量解析为 RequestedSpec:

    foo            -> tag     latest
    foo@1.2.3      -> version 1.2.3
    foo@^1.0.0     -> range   ^1.0.0
    foo@next       -> tag     next
    @scope/foo@~2  -> range   ~2

git / url / 本地路径等来源不在支持范围内，解析时直接报错。
"""

from __future__ import annotations

import re

from pkgtree.core.exceptions import SpecError
from pkgtree.core.models import SPEC_RANGE, SPEC_TAG, SPEC_VERSION, RequestedSpec
from pkgtree.core.semver import parse_range, parse_version

_NAME_RE = re.compile(r"^(@[a-z0-9][\w.\-~]*/)?[a-z0-9_.][\w.\-~]*$", re.IGNORECASE)
_TAG_RE = re.compile(r"^[a-z][\w.\-]*$", re.IGNORECASE)


def split_spec(raw: str) -> tuple[str, str]:
    """拆分包名与范围，兼容 @scope/name 形式"""
    raw = raw.strip()
    start = 1 if raw.startswith("@") else 0
    idx = raw.find("@", start)
    if idx == -1:
        return raw, ""
    return raw[:idx], raw[idx + 1:]


def classify(name: str, spec: str) -> RequestedSpec:
    """根据范围字面量判定请求类型"""
    spec = spec.strip()
    if not spec:
        return RequestedSpec(name=name, type=SPEC_TAG, spec="latest")
    if parse_version(spec) is not None:
        return RequestedSpec(name=name, type=SPEC_VERSION, spec=spec)
    if parse_range(spec) is not None:
        return RequestedSpec(name=name, type=SPEC_RANGE, spec=spec)
    if _TAG_RE.match(spec):
        return RequestedSpec(name=name, type=SPEC_TAG, spec=spec)
    raise SpecError(f"不支持的依赖描述: {name}@{spec}")


def parse_spec(raw: str) -> RequestedSpec:
    name, spec = split_spec(raw)
    if not name or not _NAME_RE.match(name):
        raise SpecError(f"无效的包名: {raw!r}")
    return classify(name, spec)
