"""依赖树序列化

tree_to_dict() 供 CLI 导出与 Web API 使用；render_tree() 输出缩进文本。
"""

from __future__ import annotations

from typing import Any

from pkgtree.core.models import TreeNode
from pkgtree.core.tree.nodes import flat_name


def tree_to_dict(node: TreeNode) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "name": node.name,
        "version": node.version,
        "path": node.path,
        "location": flat_name(node),
    }
    if node.requested is not None:
        entry["requested"] = {"type": node.requested.type, "spec": node.requested.spec}
    if node.required_by:
        entry["required_by"] = list(node.required_by)
    flags = [
        flag for flag, on in (
            ("dev", node.dev_dependency),
            ("bundled", node.from_bundle),
            ("shrinkwrap", bool(node.from_shrinkwrap)),
            ("direct", node.directly_requested),
            ("global", node.is_global),
        ) if on
    ]
    if flags:
        entry["flags"] = flags
    if node.phantom_children:
        entry["shadowed"] = dict(sorted(node.phantom_children.items()))
    entry["children"] = [tree_to_dict(c) for c in sorted(node.children, key=lambda c: c.name)]
    return entry


def render_tree(node: TreeNode, indent: str = "") -> list[str]:
    """渲染为缩进文本行，如 "├── a@1.0.0" """
    lines = [node.display_name] if not indent else []
    children = sorted(node.children, key=lambda c: c.name)
    for i, child in enumerate(children):
        last = i == len(children) - 1
        label = child.display_name
        if child.dev_dependency:
            label += " (dev)"
        if child.from_bundle:
            label += " (bundled)"
        lines.append(f"{indent}{'└── ' if last else '├── '}{label}")
        lines.extend(render_tree(child, indent + ("    " if last else "│   ")))
    return lines
