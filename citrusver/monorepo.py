"""Monorepo support: discover workspace packages and bump them together.

Workspace patterns come from, in order of precedence:
1. ``workspaces`` in the root package.json (npm / yarn)
2. ``packages`` in lerna.json
3. ``packages`` in pnpm-workspace.yaml
4. ``[tool.uv.workspace].members`` in the root pyproject.toml

Patterns are expanded with ``glob``; a directory counts as a package when
it holds a package.json or pyproject.toml.
"""

from __future__ import annotations

import glob
import json
from pathlib import Path
from typing import Any

import structlog
import tomlkit
import yaml
from pydantic import BaseModel

from .gitops import SourceControl
from .manifest import PACKAGE_JSON, PYPROJECT, dump_json, load_json, open_manifest
from .models import BumpKind, PackageInfo, VersionBump, VersionStrategyConfig
from .shell import info, warn
from .versions import next_version

logger = structlog.get_logger(__name__)

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")


class Workspace(BaseModel):
    type: str
    patterns: list[str]


def _read_json(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text())
    return data if isinstance(data, dict) else {}


def detect_workspaces(root: Path) -> Workspace | None:
    package_json = root / PACKAGE_JSON
    if package_json.exists():
        workspaces = _read_json(package_json).get("workspaces")
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages")
        if workspaces:
            return Workspace(type="npm-workspaces", patterns=list(workspaces))

    lerna_json = root / "lerna.json"
    if lerna_json.exists():
        patterns = _read_json(lerna_json).get("packages") or ["packages/*"]
        return Workspace(type="lerna", patterns=list(patterns))

    pnpm_workspace = root / "pnpm-workspace.yaml"
    if pnpm_workspace.exists():
        data = yaml.safe_load(pnpm_workspace.read_text()) or {}
        patterns = data.get("packages") if isinstance(data, dict) else None
        if patterns:
            return Workspace(type="pnpm-workspaces", patterns=[str(p) for p in patterns])

    pyproject = root / PYPROJECT
    if pyproject.exists():
        doc = tomlkit.parse(pyproject.read_text())
        members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
        if members:
            return Workspace(type="uv-workspace", patterns=[str(m) for m in members])

    return None


def _package_from_dir(root: Path, directory: Path) -> PackageInfo | None:
    json_manifest = directory / PACKAGE_JSON
    if json_manifest.exists():
        data = _read_json(json_manifest)
        deps: list[str] = []
        for field in DEPENDENCY_FIELDS:
            deps.extend(data.get(field, {}) or {})
        return PackageInfo(
            name=str(data.get("name", directory.name)),
            path=str(directory.relative_to(root)),
            manifest=str(json_manifest.relative_to(root)),
            version=str(data.get("version", "0.0.0")),
            private=bool(data.get("private", False)),
            deps=deps,
        )

    toml_manifest = directory / PYPROJECT
    if toml_manifest.exists():
        project = tomlkit.parse(toml_manifest.read_text()).get("project", {})
        return PackageInfo(
            name=str(project.get("name", directory.name)),
            path=str(directory.relative_to(root)),
            manifest=str(toml_manifest.relative_to(root)),
            version=str(project.get("version", "0.0.0")),
        )
    return None


def discover_packages(root: Path, fallback_pattern: str = "packages/*") -> list[PackageInfo]:
    """Find every workspace package under ``root``.

    Only internal dependencies (names of other discovered packages) are
    kept in ``PackageInfo.deps``.
    """
    workspace = detect_workspaces(root)
    patterns = workspace.patterns if workspace else [fallback_pattern]
    logger.debug("workspace patterns", type=workspace.type if workspace else None, patterns=patterns)

    packages: dict[str, PackageInfo] = {}
    for pattern in patterns:
        for match in sorted(glob.glob(str(root / pattern))):
            directory = Path(match)
            if not directory.is_dir() or directory.resolve() == root.resolve():
                continue
            package = _package_from_dir(root, directory)
            if package is not None and package.name not in packages:
                packages[package.name] = package

    names = set(packages)
    for package in packages.values():
        package.deps = [d for d in dict.fromkeys(package.deps) if d in names]
    return list(packages.values())


def update_internal_dependencies(data: dict[str, Any], versions: dict[str, str]) -> None:
    """Point internal dependency ranges at new versions, keeping ^ or ~."""
    for field in DEPENDENCY_FIELDS:
        deps = data.get(field)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if name not in versions or not isinstance(spec, str):
                continue
            if spec.startswith("workspace:"):
                continue
            prefix = spec[0] if spec[:1] in ("^", "~") else ""
            deps[name] = prefix + versions[name]


def changed_packages(
    gateway: SourceControl, packages: list[PackageInfo], since: str | None
) -> list[PackageInfo]:
    """Packages with files changed since ``since`` (all of them if None)."""
    if not since:
        return list(packages)
    changed_files = gateway.changed_files(since)
    result = []
    for package in packages:
        prefix = package.path.rstrip("/") + "/"
        if any(f.startswith(prefix) for f in changed_files):
            result.append(package)
    return result


def plan_package_versions(
    packages: list[PackageInfo],
    kind: BumpKind,
    strategy: VersionStrategyConfig,
    synced_version: str | None,
    include_private: bool = False,
) -> dict[str, VersionBump]:
    """Decide the new version of each package without writing anything.

    With ``synced_version`` every package gets that version; otherwise each
    package is bumped from its own current version.
    """
    bumps: dict[str, VersionBump] = {}
    for package in packages:
        if package.private and not include_private:
            continue
        new = synced_version or next_version(package.version, kind, strategy)
        bumps[package.name] = VersionBump(old=package.version, new=new)
    return bumps


def write_package_versions(
    root: Path, packages: list[PackageInfo], bumps: dict[str, VersionBump]
) -> None:
    """Write the planned versions and re-pin internal dependencies."""
    versions = {p.name: p.version for p in packages} | {n: b.new for n, b in bumps.items()}
    for package in packages:
        bump = bumps.get(package.name)
        path = root / package.manifest
        if path.name == PACKAGE_JSON:
            data, indent, newline = load_json(path)
            if bump:
                data["version"] = bump.new
            internal = {d: versions[d] for d in package.deps if d in bumps}
            if not bump and not internal:
                continue
            update_internal_dependencies(data, internal)
            dump_json(path, data, indent, newline)
        elif bump:
            open_manifest(path).write_version(bump.new)
        else:
            continue
        if bump:
            info(f"{package.name}: {bump.old} → {bump.new}")


def package_manifest_files(root: Path, packages: list[PackageInfo]) -> list[Path]:
    paths = [root / p.manifest for p in packages]
    missing = [p for p in paths if not p.exists()]
    for path in missing:
        warn(f"Package manifest disappeared: {path}")
    return [p for p in paths if p.exists()]
