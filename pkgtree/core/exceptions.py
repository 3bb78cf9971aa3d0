"""统一异常体系

所有业务异常继承 PkgTreeError。解析过程中的硬失败会沿依赖链向上冒泡，
每经过一层加载器就追加一个依赖方标识，最终呈现为
"required by a@1.0.0 required by root@0.0.0" 形式的上下文。
"""

from __future__ import annotations


class PkgTreeError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str, required_by: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.required_by: list[str] = list(required_by or [])

    def add_parent(self, identity: str) -> None:
        """追加一个依赖方标识（由内向外）"""
        if self.required_by and self.required_by[-1] == identity:
            return
        self.required_by.append(identity)

    def __str__(self) -> str:
        if not self.required_by:
            return self.message
        chain = " ".join(f"required by {who}" for who in self.required_by)
        return f"{self.message} ({chain})"


class ConfigError(PkgTreeError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class SpecError(PkgTreeError):
    """依赖描述符（name@range）无法解析"""

    code = "SPEC_ERROR"


class FetchError(PkgTreeError):
    """包元数据获取失败"""

    code = "FETCH_ERROR"


class ShrinkwrapError(PkgTreeError):
    """shrinkwrap 快照条目无效，无法展开"""

    code = "SHRINKWRAP_ERROR"
