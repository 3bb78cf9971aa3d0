"""依赖解析 API Blueprint"""

from __future__ import annotations

from pathlib import Path

from flask import Blueprint, Response, request

from pkgtree.core.config import get_config
from pkgtree.core.exceptions import ConfigError, PkgTreeError
from pkgtree.core.fetch import RegistryFetcher, RegistryIndex
from pkgtree.services.resolve_service import ResolveRequest, ResolveService
from pkgtree.web.responses import bad_request, ok, resolve_failed

resolve_bp = Blueprint("resolve", __name__, url_prefix="/api")


def _project_dir(value: object) -> str:
    """把请求中的 project_dir 解析到 web_root 之下

    参数:
        value: 请求体中的原始值，缺省为 web_root 本身

    返回:
        解析后的绝对路径

    异常:
        ValueError: 不是字符串，或解析后越出 web_root
    """
    base = Path(get_config().web_root).resolve()
    if value is None:
        return str(base)
    if not isinstance(value, str):
        raise ValueError("project_dir 必须是字符串")
    target = (base / value).resolve()
    if not target.is_relative_to(base):
        raise ValueError(f"project_dir 路径不合法: {value}")
    return str(target)


@resolve_bp.route("/health", methods=["GET"])
def health() -> Response:
    from pkgtree import __version__
    return ok({"status": "ok", "version": __version__})


@resolve_bp.route("/resolve", methods=["POST"])
def resolve() -> tuple[Response, int] | Response:
    """请求体:
        {
          "manifest": {...package.json...},
          "registry": {"packages": {...}},   # 可选，缺省使用配置中的注册表文件
          "dev": true,
          "install": ["name@range"],
          "project_dir": "app"               # 相对 web_root，不可越出
        }
    """
    body = request.get_json(silent=True) or {}
    manifest = body.get("manifest")
    if not isinstance(manifest, dict):
        return bad_request("需要提供 manifest 对象")
    install = body.get("install") or []
    if not isinstance(install, list) or not all(isinstance(s, str) for s in install):
        return bad_request("install 必须是字符串列表")
    try:
        project_dir = _project_dir(body.get("project_dir"))
    except ValueError as e:
        return bad_request(str(e))

    try:
        registry = body.get("registry")
        if registry is not None:
            if not isinstance(registry, dict):
                return bad_request("registry 必须是对象")
            service = ResolveService(RegistryFetcher(RegistryIndex.normalize(registry)))
        else:
            service = ResolveService.from_registry_file()
        report = service.resolve(ResolveRequest(
            manifest=manifest,
            project_dir=project_dir,
            include_dev=bool(body.get("dev", True)),
            install=install,
        ))
    except ConfigError as e:
        return bad_request(str(e))
    except PkgTreeError as e:
        return resolve_failed(e)
    return ok(report.to_dict())
