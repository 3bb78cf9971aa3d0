"""遮蔽记录

依赖方与实际安装位置之间的每一层祖先都要记下 "name -> version"，
之后在这些层上放置同名包时据此拒绝，避免破坏已经解析好的依赖边。
"""

from __future__ import annotations

from pkgtree.core.models import TreeNode


def update_phantom_children(current: TreeNode | None, child: TreeNode) -> None:
    """从 current 向上走到 child.parent（不含）为止，逐层记录遮蔽"""
    stop = child.parent
    while current is not None and current is not stop:
        current.phantom_children[child.name] = child.version
        current = current.parent
