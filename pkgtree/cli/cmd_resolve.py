"""CLI — 依赖树解析命令（resolve / install / peers）"""

from __future__ import annotations

from pathlib import Path

import click
import yaml

from pkgtree.core.exceptions import PkgTreeError
from pkgtree.core.tree.dump import render_tree
from pkgtree.services.resolve_service import ResolveReport, ResolveRequest, ResolveService
from pkgtree.utils.yaml_io import load_manifest, save_manifest, save_yaml


def register(group: click.Group) -> None:
    group.add_command(resolve)
    group.add_command(install)
    group.add_command(peers)


def _run(registry: str, req: ResolveRequest) -> ResolveReport:
    try:
        return ResolveService.from_registry_file(registry).resolve(req)
    except PkgTreeError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e


def _load_manifest(manifest: str) -> dict:
    try:
        data = load_manifest(manifest)
    except (ValueError, yaml.YAMLError, OSError) as e:
        raise click.ClickException(f"清单无法读取: {manifest} ({e})") from e
    if not data:
        raise click.ClickException(f"清单为空或不存在: {manifest}")
    return data


def _emit(report: ResolveReport, output: str | None) -> None:
    if output:
        save_yaml(output, report.to_dict())
        click.echo(f"依赖树已写入: {output}")
    else:
        for line in render_tree(report.tree):
            click.echo(line)
    for w in report.warnings:
        click.echo(f"WARN {w}", err=True)


@click.command()
@click.argument("manifest", default="package.json")
@click.option("--registry", default="", help="注册表路径（默认取配置 registry_file）")
@click.option("--dev/--no-dev", default=True, help="是否加载 devDependencies")
@click.option("--output", "-o", default=None, help="将依赖树导出为 YAML 文件")
def resolve(manifest: str, registry: str, dev: bool, output: str | None) -> None:
    """解析清单中的依赖为去重后的安装树"""
    req = ResolveRequest(
        manifest=_load_manifest(manifest),
        project_dir=str(Path(manifest).resolve().parent),
        include_dev=dev,
    )
    _emit(_run(registry, req), output)


@click.command()
@click.argument("specs", nargs=-1, required=True)
@click.option("--manifest", "-m", default="package.json", help="项目清单路径")
@click.option("--registry", default="", help="注册表路径（默认取配置 registry_file）")
@click.option("--save", is_flag=True, help="作为依赖写回清单")
@click.option("--output", "-o", default=None, help="将依赖树导出为 YAML 文件")
def install(
    specs: tuple[str, ...], manifest: str, registry: str, save: bool, output: str | None,
) -> None:
    """在项目树中安装指定的包（name@range，可多个）"""
    data = _load_manifest(manifest)
    req = ResolveRequest(
        manifest=data,
        project_dir=str(Path(manifest).resolve().parent),
        install=list(specs),
        save=save,
    )
    report = _run(registry, req)

    if save:
        deps = data.setdefault("dependencies", {})
        for child in report.tree.children:
            if child.directly_requested:
                deps[child.name] = f"^{child.version}"
        save_manifest(manifest, data)
        click.echo(f"已写回清单: {manifest}")
    _emit(report, output)


@click.command()
@click.argument("manifest", default="package.json")
@click.option("--registry", default="", help="注册表路径（默认取配置 registry_file）")
def peers(manifest: str, registry: str) -> None:
    """检查 peerDependencies 是否都有满足的安装"""
    req = ResolveRequest(
        manifest=_load_manifest(manifest),
        project_dir=str(Path(manifest).resolve().parent),
    )
    report = _run(registry, req)
    if not report.warnings:
        click.echo("peer 依赖全部满足。")
        return
    for w in report.warnings:
        click.echo(w)
