"""Web 层统一响应辅助函数"""

from __future__ import annotations

from flask import Response, jsonify

from pkgtree.core.exceptions import PkgTreeError


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    """成功响应"""
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def bad_request(message: str) -> tuple[Response, int]:
    """请求参数错误"""
    return jsonify(error=message), 400


def resolve_failed(exc: PkgTreeError) -> tuple[Response, int]:
    """解析失败（依赖缺失、快照无效等），附带依赖链"""
    return jsonify(error=str(exc), code=exc.code, required_by=exc.required_by), 422
