"""YAML / JSON 文件读写

- 注册表、配置文件: load_yaml / save_yaml
- 项目清单: load_manifest / save_manifest，按后缀选择 JSON 或 YAML，
  写回时保持原格式（package.json 仍是 JSON）

所有读取都有 10MB 上限，空文件或顶层不是对象时返回空字典；
所有写入都经 atomic_write，中途失败不会留下半截文件。
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

import yaml

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """原子写入：先写同目录临时文件再 rename

    参数:
        path: 目标文件路径，父目录不存在时自动创建
        content: 文本内容，UTF-8 编码

    异常:
        OSError: 写入或替换失败，临时文件已清理
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def _read_mapping(path: str | Path, parse: Callable[[str], Any]) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    size = p.stat().st_size
    if size > MAX_FILE_SIZE:
        raise ValueError(f"文件过大: {p} ({size} 字节), 超过限制 {MAX_FILE_SIZE} 字节")

    try:
        result = parse(p.read_text(encoding="utf-8"))
    except (yaml.YAMLError, ValueError) as e:
        logger.error("解析文件失败: %s, 错误: %s", p, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning("%s 顶层不是对象 (实际类型: %s)，按空处理", p, type(result).__name__)
        return {}
    return result


def _parse_json(text: str) -> Any:
    return json.loads(text) if text.strip() else None


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 文件

    参数:
        path: YAML 文件路径

    返回:
        dict: 解析结果；文件不存在、为空或顶层不是映射时返回空字典

    异常:
        yaml.YAMLError: 格式错误
        ValueError: 文件超过 MAX_FILE_SIZE
        OSError: IO 错误
    """
    return _read_mapping(path, yaml.safe_load)


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML，保持键顺序并允许 Unicode

    参数:
        path: 目标文件路径
        data: 可被 yaml.safe_dump 序列化的数据

    异常:
        yaml.YAMLError: 序列化失败
        OSError: 写入失败
    """
    content = yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    atomic_write(Path(path), content)


def _is_json(path: str | Path) -> bool:
    return Path(path).suffix.lower() == ".json"


def load_manifest(path: str | Path) -> dict[str, Any]:
    """读取项目清单（package.json 或 YAML 格式）

    参数:
        path: 清单路径；*.json 按 JSON 解析，其余按 YAML

    返回:
        dict: 清单内容；文件不存在、为空或顶层不是对象时返回空字典

    异常:
        ValueError: JSON 格式错误（json.JSONDecodeError）或文件过大
        yaml.YAMLError: YAML 格式错误
        OSError: IO 错误
    """
    return _read_mapping(path, _parse_json if _is_json(path) else yaml.safe_load)


def save_manifest(path: str | Path, data: dict[str, Any]) -> None:
    """写回项目清单，沿用文件原本的格式

    参数:
        path: 清单路径；*.json 写为两空格缩进的 JSON
        data: 清单内容

    异常:
        OSError: 写入失败
    """
    if _is_json(path):
        atomic_write(Path(path), json.dumps(data, indent=2, ensure_ascii=False) + "\n")
    else:
        save_yaml(path, data)
