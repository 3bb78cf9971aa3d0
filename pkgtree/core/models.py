"""核心数据模型

- RequestedSpec: 一次依赖请求的描述（包名 + 类型 + 字面值）
- PackageMeta:   元数据拉取器返回的包描述（清单中的四类依赖、bin、bundle、shrinkwrap）
- TreeNode:      安装树中的一个节点，占据一个目录槽位

TreeNode 的字段在定义时全部列出，解析过程中只修改已有字段，不临时挂载新属性。
父节点通过 children 持有子节点，子节点只保留父节点的弱引用。
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field, replace
from typing import Any, Iterator

# required_by 中的合成标记：由最终用户直接请求，而非所在子树的真实依赖
USER_MARKER = "#USER"

SPEC_VERSION = "version"
SPEC_RANGE = "range"
SPEC_TAG = "tag"


@dataclass
class RequestedSpec:
    """依赖请求描述

    type 取值:
      - version: 精确版本，如 1.2.0
      - range:   版本范围，如 ^1.0.0、>=1 <3；两个不同请求方合并后也会变为 range
      - tag:     发布标签，如 latest
    """

    name: str
    type: str
    spec: str

    @property
    def raw(self) -> str:
        return f"{self.name}@{self.spec}"

    def copy(self) -> RequestedSpec:
        return replace(self)


def _normalize_deps(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    result: dict[str, str] = {}
    for name, rng in value.items():
        text = "" if rng is None else str(rng).strip()
        result[str(name)] = text or "*"
    return result


def _normalize_bin(name: str, value: Any) -> dict[str, str]:
    # "bin": "./cli.js" 等价于以包名（去掉 scope）作为命令名
    if isinstance(value, str):
        return {name.rsplit("/", 1)[-1]: value} if value else {}
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    return {}


@dataclass
class PackageMeta:
    """包元数据（相当于解析后的 package.json）"""

    name: str
    version: str
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    bin: dict[str, str] = field(default_factory=dict)
    bundled: list[PackageMeta] = field(default_factory=list)  # 预置在包内的子树
    shrinkwrap: dict[str, Any] | None = None                  # 随包发布的冻结快照
    requested: RequestedSpec | None = None                    # 本次是如何被请求的

    @classmethod
    def from_manifest(
        cls, data: dict[str, Any], requested: RequestedSpec | None = None,
    ) -> PackageMeta:
        """从 package.json 风格的字典构建

        optionalDependencies 会并入 dependencies（可选依赖同时也是依赖），
        空范围按 "*" 处理。
        """
        name = str(data.get("name") or "")
        optional = _normalize_deps(data.get("optionalDependencies"))
        deps = _normalize_deps(data.get("dependencies"))
        for dep, rng in optional.items():
            deps.setdefault(dep, rng)

        shrinkwrap = data.get("shrinkwrap")
        return cls(
            name=name,
            version=str(data.get("version") or ""),
            dependencies=deps,
            dev_dependencies=_normalize_deps(data.get("devDependencies")),
            optional_dependencies=optional,
            peer_dependencies=_normalize_deps(data.get("peerDependencies")),
            bin=_normalize_bin(name, data.get("bin")),
            bundled=[
                cls.from_manifest(b) for b in (data.get("bundled") or [])
                if isinstance(b, dict)
            ],
            shrinkwrap=shrinkwrap if isinstance(shrinkwrap, dict) else None,
            requested=requested,
        )


@dataclass(eq=False)
class TreeNode:
    """安装树节点

    eq=False: 节点按对象身份比较，同名同版本的两个节点是两个不同的槽位。
    """

    package: PackageMeta
    path: str = ""
    realpath: str = ""
    requested: RequestedSpec | None = None
    children: list[TreeNode] = field(default_factory=list)
    requires: list[TreeNode] = field(default_factory=list, repr=False)
    required_by: list[str] = field(default_factory=list)
    phantom_children: dict[str, str] = field(default_factory=dict)

    loaded: bool = False
    directly_requested: bool = False
    save: bool = False
    dev_dependency: bool = False
    from_bundle: bool = False
    from_shrinkwrap: str = ""
    is_global: bool = False

    # 相邻 shrinkwrap 文件的读取状态；checked 为 True 表示已确定有无快照
    shrinkwrap: dict[str, Any] | None = None
    shrinkwrap_checked: bool = False

    _parent_ref: weakref.ref | None = field(default=None, repr=False)

    @classmethod
    def root(cls, package: PackageMeta, path: str) -> TreeNode:
        """创建树根（项目自身），根节点的依赖由调用方显式加载"""
        return cls(package=package, path=path, realpath=path)

    @property
    def parent(self) -> TreeNode | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @parent.setter
    def parent(self, node: TreeNode | None) -> None:
        self._parent_ref = weakref.ref(node) if node is not None else None

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version

    @property
    def display_name(self) -> str:
        if not self.name:
            return self.path or "(root)"
        return f"{self.name}@{self.version}" if self.version else self.name

    def add_child(self, child: TreeNode) -> None:
        child.parent = self
        self.children.append(child)

    def remove_child(self, child: TreeNode) -> None:
        self.children = [c for c in self.children if c is not child]
        child.parent = None

    def walk(self) -> Iterator[TreeNode]:
        """先序遍历（含自身）"""
        yield self
        for child in self.children:
            yield from child.walk()

    def top(self) -> TreeNode:
        node = self
        while node.parent is not None:
            node = node.parent
        return node
