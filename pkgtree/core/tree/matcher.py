"""已安装依赖查找

从某个节点出发向上查找一个已经满足 name@requested 的节点。
"""

from __future__ import annotations

from pkgtree.core.models import SPEC_RANGE, SPEC_VERSION, RequestedSpec, TreeNode
from pkgtree.core.semver import satisfies


def version_match(node: TreeNode, requested: RequestedSpec) -> bool:
    """节点是否满足请求：请求描述完全相同，或版本落在请求范围内"""
    own = node.requested
    if own is not None and own.type == requested.type and own.spec == requested.spec:
        return True
    if requested.type not in (SPEC_RANGE, SPEC_VERSION):
        return False
    return satisfies(node.version, requested.spec)


def find_requirement(
    node: TreeNode, name: str, requested: RequestedSpec,
) -> TreeNode | None:
    """在 node 及其祖先范围内查找满足请求的已有节点

    查找规则:
      1. node 自身就是同名包：版本满足则返回自身，否则返回 None（需要新装一份）
      2. node 的子节点中有同名包：返回第一个满足的；都不满足则返回 None，不再向上查找
      3. 没有同名子节点：递归到父节点；到达根仍未找到则返回 None

    根节点本身不参与名称匹配（项目不会满足自己的依赖）。

    参数:
        node: 查找起点，通常是依赖方节点
        name: 包名
        requested: 依赖方的请求描述

    返回:
        TreeNode | None: 可复用的已有节点；None 表示需要新装一份

    示例:
        >>> found = find_requirement(a, "b", parse_spec("b@^1.0.0"))
        >>> found.version  # 根下已装 b@1.2.0
        '1.2.0'
    """
    def name_match(candidate: TreeNode) -> bool:
        return candidate.name == name and candidate.parent is not None

    if name_match(node):
        return node if version_match(node, requested) else None

    matches = [c for c in node.children if name_match(c)]
    if matches:
        for candidate in matches:
            if version_match(candidate, requested):
                return candidate
        return None

    parent = node.parent
    if parent is None:
        return None
    return find_requirement(parent, name, requested)
