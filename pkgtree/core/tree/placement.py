"""安装位置规划

为一个新包找到树中可以放置它的最高祖先目录。
"""

from __future__ import annotations

from pkgtree.core.models import PackageMeta, TreeNode


def _blocked_at(required_by: TreeNode, node: TreeNode, pkg: PackageMeta) -> bool:
    # 已有同名子节点
    if any(c.name == pkg.name for c in node.children):
        return True

    # 子节点暴露的命令名与新包冲突
    if pkg.bin and any(set(c.package.bin) & set(pkg.bin) for c in node.children):
        return True

    # 该层自己声明了这个依赖：能复用的话 find_requirement 早已找到，说明版本不兼容
    if node is not required_by and pkg.name in node.package.dependencies:
        return True

    # 已有经过该层解析为其他版本的同名依赖
    return pkg.name in node.phantom_children


def earliest_installable(
    required_by: TreeNode, node: TreeNode, pkg: PackageMeta,
) -> TreeNode | None:
    """从 node 开始向根方向寻找可安装 pkg 的最高层

    某一层出现以下任一情况即不可放置: 已有同名子节点、子节点的命令名冲突、
    该层（非依赖方自身）声明了同名依赖、遮蔽记录中有同名包。
    全局安装的节点视为顶层，不再继续向上。

    参数:
        required_by: 依赖方节点，它自己的依赖声明不算阻挡
        node: 本层候选位置，首次调用时与 required_by 相同
        pkg: 待安装的包

    返回:
        TreeNode | None: 可作为 pkg 父节点的最高层；
        node 本身不可放置时返回 None，由调用方退回到下一层
    """
    if _blocked_at(required_by, node, pkg):
        return None

    parent = node.parent
    if parent is None or node.is_global:
        return node

    return earliest_installable(required_by, parent, pkg) or node
