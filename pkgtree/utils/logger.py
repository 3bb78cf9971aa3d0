"""pkgtree 日志配置

两种输出: 人类可读文本（默认）和逐行 JSON。
CLI 入口通过环境变量选择:

  PKGTREE_LOG_LEVEL  日志级别，默认 INFO
  PKGTREE_LOG_JSON   为 "1" 时输出 JSON
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

from pkgtree.core.exceptions import PkgTreeError

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """逐行 JSON 日志，解析失败时附带错误码与依赖链"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.lineno}",
        }
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            if isinstance(exc, PkgTreeError):
                entry["code"] = exc.code
                entry["required_by"] = list(exc.required_by)
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，输出到 stderr；重复调用会替换已有 handler"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)


def setup_logging_from_env() -> None:
    setup_logging(
        level=os.getenv("PKGTREE_LOG_LEVEL", "INFO"),
        json_output=os.getenv("PKGTREE_LOG_JSON", "") == "1",
    )
