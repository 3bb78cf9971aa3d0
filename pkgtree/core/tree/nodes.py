"""树节点的挂载、摘除与路径计算"""

from __future__ import annotations

import logging
import os

from pkgtree.core.models import PackageMeta, TreeNode

logger = logging.getLogger(__name__)


def flat_name(node: TreeNode) -> str:
    """节点在树中的扁平路径：根为 "/"，其下依次为 /a、/a/b"""
    parent = node.parent
    if parent is None:
        return "/"
    prefix = flat_name(parent)
    if prefix != "/":
        prefix += "/"
    return prefix + (node.name or "TOP")


def is_dep(node: TreeNode, child: TreeNode) -> bool:
    """child 是否是 node 清单中声明的依赖（dependencies 或 devDependencies）"""
    name = child.name
    return name in node.package.dependencies or name in node.package.dev_dependencies


def push_unique(items: list[TreeNode], node: TreeNode) -> None:
    if not any(item is node for item in items):
        items.append(node)


def add_required_by(node: TreeNode, who: str) -> None:
    if who not in node.required_by:
        node.required_by.append(who)


def attach_child(parent: TreeNode, pkg: PackageMeta, modules_dir: str) -> TreeNode:
    """在 parent 的模块目录下新建节点并挂载，预置的 bundle 子树原样挂上"""
    child = TreeNode(
        package=pkg,
        requested=pkg.requested.copy() if pkg.requested else None,
        shrinkwrap=pkg.shrinkwrap,
        shrinkwrap_checked=True,
    )
    parent.add_child(child)
    child.path = os.path.join(parent.path, modules_dir, pkg.name)
    child.realpath = os.path.abspath(os.path.join(parent.realpath, modules_dir, pkg.name))
    if pkg.bundled:
        inflate_bundled(child, pkg.bundled)
    return child


def inflate_bundled(parent: TreeNode, bundled: list[PackageMeta]) -> None:
    """挂载预置子树

    bundle 成员直接位于父包目录下（不经过模块目录），不再校验版本范围。
    """
    for pkg in bundled:
        child = TreeNode(package=pkg, from_bundle=True)
        parent.add_child(child)
        child.path = os.path.join(parent.path, pkg.name)
        child.realpath = os.path.abspath(os.path.join(parent.path, pkg.name))
        inflate_bundled(child, pkg.bundled)


def detach(node: TreeNode) -> None:
    """从父节点摘除 node，并清理整棵树中指向该子树的 required_by / requires"""
    parent = node.parent
    if parent is None:
        return
    top = node.top()
    removed = list(node.walk())
    removed_paths = {flat_name(n) for n in removed}
    parent.remove_child(node)

    for other in top.walk():
        other.required_by = [r for r in other.required_by if r not in removed_paths]
        other.requires = [r for r in other.requires if not any(r is n for n in removed)]
    logger.debug("已摘除 %s (%d 个节点)", node.display_name, len(removed))
