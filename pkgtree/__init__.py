"""pkgtree - 依赖树解析与去重引擎"""

__version__ = "0.1.0"
