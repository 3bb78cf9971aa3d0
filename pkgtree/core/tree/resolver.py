"""节点解析器

拿到已拉取的包元数据后，决定复用树中已有节点还是新建节点:

  - resolve_with_existing_module(): 绑定到已有节点，更新其请求描述、
    required_by 与遮蔽记录，必要时读取并展开相邻的 shrinkwrap 快照
  - resolve_requirement(): 新建节点，经位置规划挂载到尽可能高的祖先下

"读取兄弟节点 -> 决定位置 -> 挂载" 必须作为一个整体执行，
由 self.lock 串行化，避免并发挂载使位置判定失效。
"""

from __future__ import annotations

import logging
import threading

from pkgtree.core.config import Config, get_config
from pkgtree.core.fetch.snapshot import FileSnapshotSource
from pkgtree.core.models import SPEC_RANGE, SPEC_VERSION, PackageMeta, RequestedSpec, TreeNode
from pkgtree.core.protocols import MetadataFetcher, SnapshotSource
from pkgtree.core.semver import satisfies
from pkgtree.core.spec import parse_spec
from pkgtree.core.tree.matcher import find_requirement
from pkgtree.core.tree.nodes import (
    add_required_by,
    attach_child,
    detach,
    flat_name,
    is_dep,
    push_unique,
)
from pkgtree.core.tree.placement import earliest_installable
from pkgtree.core.tree.shadow import update_phantom_children
from pkgtree.core.tree.shrinkwrap import ShrinkwrapInflater

logger = logging.getLogger(__name__)


def widen_requested(node: TreeNode, incoming: RequestedSpec | None) -> None:
    """合并新请求方的描述，只放宽不收窄"""
    if node.requested is None:
        if incoming is not None and satisfies(node.version, incoming.spec):
            node.requested = incoming.copy()
        else:
            node.requested = RequestedSpec(
                name=node.name, type=SPEC_VERSION, spec=node.version,
            )
    if incoming is not None and node.requested.spec != incoming.spec:
        node.requested.spec += " " + incoming.spec
        node.requested.type = SPEC_RANGE


class NodeResolver:
    """把拉取到的包落到树上"""

    def __init__(
        self,
        fetcher: MetadataFetcher,
        snapshot_source: SnapshotSource | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or get_config()
        self.fetcher = fetcher
        self.snapshot_source = snapshot_source or FileSnapshotSource()
        self.inflater = ShrinkwrapInflater(fetcher, self.snapshot_source, self.config)
        self.lock = threading.RLock()

    def add_dependency(self, pkg: PackageMeta, spec: str, requirer: TreeNode) -> TreeNode:
        """requirer 声明的 spec 已拉取为 pkg：能复用则复用，否则新装"""
        requested = parse_spec(spec)
        with self.lock:
            existing = find_requirement(requirer, pkg.name, requested)
            if existing is not None:
                return self.resolve_with_existing_module(existing, pkg, requirer)
            return self.resolve_requirement(pkg, requirer)

    def replace_dependency(self, pkg: PackageMeta, requirer: TreeNode) -> TreeNode:
        """用户显式请求：先摘掉 requirer 下的同名节点，再新装"""
        with self.lock:
            for child in [c for c in requirer.children if c.name == pkg.name]:
                logger.info("替换 %s (位于 %s)", child.display_name, requirer.display_name)
                detach(child)
            return self.resolve_requirement(pkg, requirer)

    def resolve_with_existing_module(
        self,
        child: TreeNode,
        pkg: PackageMeta | None,
        requirer: TreeNode,
        inflate_snapshot: bool = True,
    ) -> TreeNode:
        """requirer 复用已有节点 child

        pkg 为 None 表示纯粹的重新关联（recalculate / extraneous），
        此时不带入新的请求描述。inflate_snapshot 为 False 时只更新关联信息，
        不读取相邻快照，也不会触发任何拉取。
        """
        with self.lock:
            widen_requested(child, pkg.requested if pkg is not None else None)

            if is_dep(requirer, child):
                add_required_by(child, flat_name(requirer))
            push_unique(requirer.requires, child)

            if requirer.parent is not None and child.parent is not requirer:
                update_phantom_children(requirer.parent, child)

            if inflate_snapshot and not child.loaded and not child.shrinkwrap_checked:
                snapshot = self.inflater.read_adjacent(child)
                deps = snapshot.get("dependencies") if snapshot else None
                if deps:
                    logger.info("展开 %s 的 shrinkwrap 快照", child.display_name)
                    self.inflater.inflate(child, deps)

            logger.debug("复用 %s 满足 %s", child.display_name, requirer.display_name)
            return child

    def resolve_requirement(self, pkg: PackageMeta, requirer: TreeNode) -> TreeNode:
        """新建节点并挂载到规划出的位置（默认 requirer 自身）"""
        with self.lock:
            parent = earliest_installable(requirer, requirer, pkg) or requirer
            child = attach_child(parent, pkg, self.config.modules_dir)

            if is_dep(requirer, child):
                add_required_by(child, flat_name(requirer))

            if requirer.parent is not None and child.parent is not requirer:
                update_phantom_children(requirer.parent, child)

            push_unique(requirer.requires, child)
            logger.debug(
                "安装 %s -> %s (依赖方 %s)",
                child.display_name, child.path, requirer.display_name,
            )

            deps = pkg.shrinkwrap.get("dependencies") if pkg.shrinkwrap else None
            if deps:
                self.inflater.inflate(child, deps)
            return child
