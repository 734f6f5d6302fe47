from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..actions import Action, action_from_manifest
from ..errors import ManifestError
from ..settings import Settings
from .installer import InstallSpec, RetryPolicy
from .symlinks import SymlinkSpec

TOOLS_MANIFEST = "tools.yaml"
LINKS_MANIFEST = "links.yaml"


@dataclass(frozen=True)
class PostInstallTask:
    name: str
    command: Action
    force_command: Optional[Action] = None
    requires: Optional[str] = None
    critical: bool = False


@dataclass(frozen=True)
class ToolsManifest:
    required_commands: List[str] = field(default_factory=list)
    tools: List[InstallSpec] = field(default_factory=list)
    post_install: List[PostInstallTask] = field(default_factory=list)


@dataclass(frozen=True)
class LinksManifest:
    directories: List[Path] = field(default_factory=list)
    links: List[SymlinkSpec] = field(default_factory=list)
    backup: bool = False


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest must be a mapping/dict: {path}")
    return data


def _list(data: Dict[str, Any], key: str, where: Path) -> List[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ManifestError(f"{where.name}: {key} must be a list")
    return value


def _action(raw: Any, settings: Settings, where: str) -> Action:
    try:
        return action_from_manifest(raw, expand=settings.expand)
    except (KeyError, ValueError) as e:
        raise ManifestError(f"{where}: {e}") from e


def _install_spec(raw: Any, settings: Settings, where: Path) -> InstallSpec:
    if not isinstance(raw, dict) or not raw.get("name") or "install" not in raw:
        raise ManifestError(f"{where.name}: each tool needs a name and an install command")

    name = str(raw["name"])
    retry_raw = raw.get("retry")
    retry = None
    if retry_raw:
        if not isinstance(retry_raw, dict):
            raise ManifestError(f"{where.name}: {name}.retry must be a mapping")
        retry = RetryPolicy(
            attempts=int(retry_raw.get("attempts", 3)),
            delay=float(retry_raw.get("delay", 2)),
        )

    check_path = raw.get("check_path")
    return InstallSpec(
        name=name,
        install=_action(raw["install"], settings, f"{where.name}: {name}"),
        check_command=str(raw.get("check_command") or name),
        check_path=settings.expand(str(check_path)) if check_path else None,
        force=bool(raw.get("force", False)),
        path_additions=tuple(settings.expand(str(p)) for p in raw.get("path_additions") or []),
        retry=retry,
        verify=bool(raw.get("verify", False)),
    )


def _post_install_task(raw: Any, settings: Settings, where: Path) -> PostInstallTask:
    if not isinstance(raw, dict) or not raw.get("name") or "command" not in raw:
        raise ManifestError(f"{where.name}: each post_install task needs a name and a command")
    name = str(raw["name"])
    force_raw = raw.get("force_command")
    return PostInstallTask(
        name=name,
        command=_action(raw["command"], settings, f"{where.name}: {name}"),
        force_command=_action(force_raw, settings, f"{where.name}: {name}") if force_raw else None,
        requires=str(raw["requires"]) if raw.get("requires") else None,
        critical=bool(raw.get("critical", False)),
    )


def load_tools_manifest(settings: Settings, path: Optional[Path] = None) -> ToolsManifest:
    p = path or settings.manifests_dir / TOOLS_MANIFEST
    data = load_yaml(p)
    return ToolsManifest(
        required_commands=[str(c) for c in _list(data, "required_commands", p)],
        tools=[_install_spec(t, settings, p) for t in _list(data, "tools", p)],
        post_install=[_post_install_task(t, settings, p) for t in _list(data, "post_install", p)],
    )


def load_links_manifest(settings: Settings, path: Optional[Path] = None) -> LinksManifest:
    p = path or settings.manifests_dir / LINKS_MANIFEST
    data = load_yaml(p)

    links: List[SymlinkSpec] = []
    for raw in _list(data, "links", p):
        if not isinstance(raw, dict) or not raw.get("source") or not raw.get("target"):
            raise ManifestError(f"{p.name}: each link needs a source and a target")
        source = Path(str(raw["source"]))
        if source.is_absolute():
            raise ManifestError(f"{p.name}: link source must be relative to the dotfiles dir: {source}")
        links.append(SymlinkSpec(relative_source=source, absolute_target=settings.expand(str(raw["target"]))))

    return LinksManifest(
        directories=[settings.expand(str(d)) for d in _list(data, "directories", p)],
        links=links,
        backup=bool(data.get("backup", False)),
    )
