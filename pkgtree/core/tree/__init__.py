"""依赖树解析引擎

- matcher.py:    已安装依赖查找
- placement.py:  新包安装位置规划
- shadow.py:     遮蔽记录
- nodes.py:      节点挂载/摘除与路径
- shrinkwrap.py: 冻结快照读取与展开
- resolver.py:   节点解析（复用或新建）
- loader.py:     子树加载与对外操作
- dump.py:       树的序列化与文本渲染
"""

from pkgtree.core.tree.loader import DepLoader
from pkgtree.core.tree.matcher import find_requirement
from pkgtree.core.tree.placement import earliest_installable
from pkgtree.core.tree.resolver import NodeResolver
from pkgtree.core.tree.shadow import update_phantom_children

__all__ = [
    "DepLoader",
    "NodeResolver",
    "earliest_installable",
    "find_requirement",
    "update_phantom_children",
]
