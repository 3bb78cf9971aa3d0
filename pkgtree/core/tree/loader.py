"""子树加载器

对外暴露的树操作（均接受一个树节点，原地更新后返回该节点）:

  - load_requested_deps: 用户显式请求的包挂到根下，然后加载其依赖
  - load_deps:           加载节点 dependencies 中尚未满足的依赖，并递归
  - load_dev_deps:       加载 devDependencies（与 dependencies 重名的跳过）
  - load_extraneous:     为已有但未加载的子节点补齐关联信息，并递归
  - remove_deps:         摘除指定名称的子节点
  - recalculate_metadata:不拉取，仅按清单重建 required_by / requires / 遮蔽记录
  - validate_peer_deps:  检查 peerDependencies，缺失只告警

同一节点的依赖并发拉取，拉取完成后按包名顺序逐个落树；
递归进入子节点同样按包名排序，保证相同输入得到相同的树形。
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from pkgtree.core.config import Config, get_config
from pkgtree.core.exceptions import FetchError, PkgTreeError, SpecError
from pkgtree.core.models import USER_MARKER, PackageMeta, TreeNode
from pkgtree.core.protocols import MetadataFetcher, SnapshotSource
from pkgtree.core.spec import classify, parse_spec
from pkgtree.core.tree.matcher import find_requirement
from pkgtree.core.tree.nodes import add_required_by, detach, is_dep
from pkgtree.core.tree.resolver import NodeResolver

logger = logging.getLogger(__name__)

FetchOutcome = PackageMeta | PkgTreeError


def _by_name(nodes: list[TreeNode]) -> list[TreeNode]:
    unique: list[TreeNode] = []
    for node in nodes:
        if not any(n is node for n in unique):
            unique.append(node)
    return sorted(unique, key=lambda n: n.name)


class DepLoader:
    """依赖树加载器"""

    def __init__(
        self,
        fetcher: MetadataFetcher,
        snapshot_source: SnapshotSource | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or get_config()
        self.fetcher = fetcher
        self.resolver = NodeResolver(fetcher, snapshot_source, self.config)
        self.max_workers = max(1, self.config.max_workers)

    # ------------------------------------------------------------------
    # 元数据并发拉取
    # ------------------------------------------------------------------

    def _fetch_one(self, spec: str, base_dir: str) -> FetchOutcome:
        try:
            return self.fetcher.fetch(spec, base_dir)
        except PkgTreeError as e:
            return e
        except OSError as e:
            return FetchError(f"拉取 {spec} 失败: {e}")

    def _fetch_all(self, specs: dict[str, str], base_dir: str) -> dict[str, FetchOutcome]:
        """并发拉取 {key: spec}，返回 {key: PackageMeta | 异常}，顺序与输入一致"""
        if self.max_workers == 1 or len(specs) <= 1:
            return {key: self._fetch_one(spec, base_dir) for key, spec in specs.items()}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                key: executor.submit(self._fetch_one, spec, base_dir)
                for key, spec in specs.items()
            }
            return {key: future.result() for key, future in futures.items()}

    # ------------------------------------------------------------------
    # 对外操作
    # ------------------------------------------------------------------

    def load_requested_deps(
        self, specs: list[str], tree: TreeNode, save: bool = False,
    ) -> TreeNode:
        """安装用户显式请求的包（替换 tree 下的同名节点）

        参数:
            specs: 形如 "name@range" 的请求列表
            tree: 安装目标，通常是根节点
            save: 是否写回清单；不写回且非已声明依赖的包标记为 "#USER"

        返回:
            TreeNode: tree 本身

        异常:
            PkgTreeError: 任一请求失败；其余请求照常落树后抛出第一个错误
        """
        outcomes = self._fetch_all({spec: spec for spec in specs}, tree.path)
        children: list[TreeNode] = []
        first_error: PkgTreeError | None = None

        for spec, outcome in outcomes.items():
            try:
                if isinstance(outcome, PkgTreeError):
                    raise outcome
                child = self.resolver.replace_dependency(outcome, tree)
            except PkgTreeError as e:
                e.add_parent(tree.display_name)
                logger.error("无法安装 %s: %s", spec, e)
                first_error = first_error or e
                continue

            child.is_global = self.config.global_install
            child.directly_requested = True
            child.save = save
            # 非依赖且不写回清单的包记为 "用户请求"，避免之后被当作无主依赖清理
            if not save and not is_dep(tree, child):
                add_required_by(child, USER_MARKER)
            logger.info("已添加 %s -> %s", child.display_name, child.path)
            children.append(child)

        if first_error is not None:
            raise first_error
        self._load_children(children)
        return tree

    def remove_deps(self, names: list[str], tree: TreeNode) -> TreeNode:
        """摘除 tree 下指定名称的子节点，不存在的名称忽略"""
        wanted = set(names)
        with self.resolver.lock:
            for child in [c for c in tree.children if c.name in wanted]:
                detach(child)
                logger.info("已移除 %s", child.display_name)
        return tree

    def load_deps(self, tree: TreeNode) -> TreeNode:
        """加载 tree 的 dependencies 并递归到新落树的子节点

        已加载过的节点直接返回。可选依赖失败只记告警。

        参数:
            tree: 待加载的节点

        返回:
            TreeNode: tree 本身

        异常:
            PkgTreeError: 必需依赖拉取或落树失败；required_by 记录从失败点到 tree 的依赖链
        """
        if tree.loaded:
            return tree
        tree.loaded = True
        try:
            deps = tree.package.dependencies
            children = self._add_dependencies(
                tree, deps, optional=set(tree.package.optional_dependencies),
            )
            self._load_children(children)
        except PkgTreeError as e:
            e.add_parent(tree.display_name)
            raise
        return tree

    def load_dev_deps(self, tree: TreeNode) -> TreeNode:
        """加载 devDependencies；同时出现在 dependencies 中的按普通依赖处理

        参数:
            tree: 待加载的节点，通常是根节点

        返回:
            TreeNode: tree 本身

        异常:
            PkgTreeError: 同 load_deps
        """
        dev = {
            name: rng for name, rng in tree.package.dev_dependencies.items()
            if name not in tree.package.dependencies
        }
        if not dev:
            return tree
        try:
            children = self._add_dependencies(tree, dev)
            for child in children:
                child.dev_dependency = True
            self._load_children(children)
        except PkgTreeError as e:
            e.add_parent(tree.display_name)
            raise
        return tree

    def load_extraneous(self, tree: TreeNode) -> TreeNode:
        """对尚未加载的已有子节点补做关联，然后加载其依赖

        关联时会读取子节点目录下的 shrinkwrap 快照并展开。

        参数:
            tree: 父节点

        返回:
            TreeNode: tree 本身

        异常:
            ShrinkwrapError: 快照条目无效
            PkgTreeError: 子节点依赖加载失败
        """
        pending = _by_name([c for c in tree.children if not c.loaded])
        children = [
            self.resolver.resolve_with_existing_module(child, None, tree)
            for child in pending
        ]
        self._load_children(children)
        return tree

    def recalculate_metadata(self, tree: TreeNode) -> TreeNode:
        """按清单重建派生信息，不拉取任何元数据；重复调用结果一致

        先清空整棵子树的派生信息再统一重新关联，否则父节点刚写入子节点的
        required_by 会在递归到子节点时被清掉。相邻的 shrinkwrap 快照不会被读取。

        参数:
            tree: 子树根节点

        返回:
            TreeNode: tree 本身
        """
        with self.resolver.lock:
            for node in tree.walk():
                node.requires = []
                node.required_by = [r for r in node.required_by if r == USER_MARKER]
                node.phantom_children = {}
            self._relink(tree)
        return tree

    def _relink(self, tree: TreeNode) -> None:
        # 根节点的 devDependencies 同样参与关联
        specs = [f"{name}@{rng}" for name, rng in tree.package.dependencies.items()]
        if tree.parent is None:
            for name, rng in tree.package.dev_dependencies.items():
                spec = f"{name}@{rng}"
                if spec not in specs:
                    specs.append(spec)

        for spec in specs:
            try:
                requested = parse_spec(spec)
            except SpecError:
                logger.debug("跳过无法解析的依赖描述: %s", spec)
                continue
            child = find_requirement(tree, requested.name, requested)
            if child is not None:
                self.resolver.resolve_with_existing_module(
                    child, None, tree, inflate_snapshot=False,
                )

        for child in _by_name(tree.children):
            self._relink(child)

    def validate_peer_deps(self, tree: TreeNode) -> list[str]:
        """检查 peerDependencies 是否在树中有满足的节点

        参数:
            tree: 子树根节点，递归检查其全部后代

        返回:
            list[str]: 告警文本，每个缺失或不兼容的 peer 一条
        """
        warnings: list[str] = []
        for name, rng in sorted(tree.package.peer_dependencies.items()):
            try:
                requested = classify(name, rng)
            except SpecError:
                requested = None
            if requested is None or find_requirement(tree, name, requested) is None:
                msg = (
                    f"{tree.display_name} requires a peer of {name}@{rng} "
                    "but none was installed."
                )
                logger.warning("%s", msg)
                warnings.append(msg)
        for child in _by_name(tree.children):
            warnings.extend(self.validate_peer_deps(child))
        return warnings

    # ------------------------------------------------------------------
    # 内部流程
    # ------------------------------------------------------------------

    def _add_dependencies(
        self,
        tree: TreeNode,
        deps: dict[str, str],
        optional: set[str] | None = None,
    ) -> list[TreeNode]:
        """拉取并落树一组依赖，返回解析到的节点

        可选依赖失败只告警；必需依赖失败时其余兄弟照常落树（不回滚），
        全部处理完后抛出第一个错误，且不再递归。
        """
        optional = optional or set()
        specs = {name: f"{name}@{deps[name]}" for name in sorted(deps)}
        outcomes = self._fetch_all(specs, tree.path)

        children: list[TreeNode] = []
        first_error: PkgTreeError | None = None
        for name, outcome in outcomes.items():
            try:
                if isinstance(outcome, PkgTreeError):
                    raise outcome
                children.append(self.resolver.add_dependency(outcome, specs[name], tree))
            except PkgTreeError as e:
                if name in optional:
                    logger.warning("无法安装可选依赖 %s: %s", specs[name], e)
                    logger.debug("可选依赖失败详情", exc_info=e)
                    continue
                logger.error("无法解析 %s (依赖方 %s): %s", specs[name], tree.display_name, e)
                first_error = first_error or e

        if first_error is not None:
            raise first_error
        return children

    def _load_children(self, children: list[TreeNode]) -> None:
        for child in _by_name(children):
            self.load_deps(child)
