"""Reading and writing the version-bearing project files.

Two manifest flavours are supported:

- ``package.json`` (plus the ``package-lock.json`` mirror), rewritten with
  the original indentation and trailing newline
- ``pyproject.toml`` ``[project].version``, rewritten with tomlkit so
  formatting and comments survive
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, cast

import structlog
import tomlkit
from tomlkit.exceptions import TOMLKitError

from .errors import PreconditionError
from .shell import warn

logger = structlog.get_logger(__name__)

PACKAGE_JSON = "package.json"
PACKAGE_LOCK = "package-lock.json"
PYPROJECT = "pyproject.toml"

_INDENT = re.compile(r"^\{\s*\n([ \t]+)\S")


class Manifest(Protocol):
    path: Path

    def name(self) -> str: ...

    def read_version(self) -> str: ...

    def write_version(self, version: str) -> None: ...

    def files(self) -> list[Path]: ...


def load_json(path: Path) -> tuple[dict[str, Any], str | int, bool]:
    """Load a JSON file and report how it was formatted.

    Returns:
        (data, indent, trailing_newline) where ``indent`` is what
        ``json.dumps`` needs to reproduce the file's indentation.
    """
    text = path.read_text()
    data = json.loads(text)
    match = _INDENT.match(text)
    indent: str | int = 2
    if match:
        whitespace = match.group(1)
        indent = whitespace if "\t" in whitespace else len(whitespace)
    return data, indent, text.endswith("\n")


def dump_json(path: Path, data: dict[str, Any], indent: str | int = 2, newline: bool = True) -> None:
    text = json.dumps(data, indent=indent, ensure_ascii=False)
    path.write_text(text + ("\n" if newline else ""))


class JsonManifest:
    """``package.json`` with an optional ``package-lock.json`` mirror."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock_path = path.parent / PACKAGE_LOCK

    def _load(self) -> tuple[dict[str, Any], str | int, bool]:
        try:
            data, indent, newline = load_json(self.path)
        except (OSError, ValueError) as exc:
            raise PreconditionError(f"Cannot read {self.path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise PreconditionError(f"{self.path.name} is not a JSON object")
        return data, indent, newline

    def name(self) -> str:
        return str(self._load()[0].get("name", self.path.parent.name))

    def read_version(self) -> str:
        data = self._load()[0]
        version = data.get("version")
        if not version:
            raise PreconditionError(f"No version field in {self.path.name}")
        return str(version)

    def write_version(self, version: str) -> None:
        data, indent, newline = self._load()
        data["version"] = version
        dump_json(self.path, data, indent, newline)
        logger.debug("wrote manifest", path=str(self.path), version=version)
        self._sync_lock(version)

    def _sync_lock(self, version: str) -> None:
        """Mirror the version into package-lock.json, best-effort."""
        if not self.lock_path.exists():
            return
        try:
            data, indent, newline = load_json(self.lock_path)
            data["version"] = version
            root_package = data.get("packages", {}).get("")
            if isinstance(root_package, dict) and "version" in root_package:
                root_package["version"] = version
            dump_json(self.lock_path, data, indent, newline)
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("lock sync failed", path=str(self.lock_path), error=str(exc))
            warn(f"Could not update {self.lock_path.name}: {exc}")

    def files(self) -> list[Path]:
        paths = [self.path]
        if self.lock_path.exists():
            paths.append(self.lock_path)
        return paths


class PyprojectManifest:
    """``pyproject.toml``, edited through tomlkit to preserve formatting."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> tomlkit.TOMLDocument:
        try:
            return tomlkit.parse(self.path.read_text())
        except (OSError, TOMLKitError) as exc:
            raise PreconditionError(f"Cannot read {self.path.name}: {exc}") from exc

    def name(self) -> str:
        return str(self._load().get("project", {}).get("name", self.path.parent.name))

    def read_version(self) -> str:
        version = self._load().get("project", {}).get("version")
        if not version:
            raise PreconditionError(f"No [project].version in {self.path.name}")
        return str(version)

    def write_version(self, version: str) -> None:
        doc = self._load()
        # Cast needed because tomlkit types are complex unions
        project = cast(dict[str, Any], doc["project"])
        project["version"] = version
        self.path.write_text(tomlkit.dumps(doc))
        logger.debug("wrote manifest", path=str(self.path), version=version)

    def files(self) -> list[Path]:
        return [self.path]


def open_manifest(path: Path) -> Manifest:
    if path.name == PYPROJECT:
        return PyprojectManifest(path)
    return JsonManifest(path)


def find_manifest(root: Path) -> Manifest:
    """Locate the project manifest in ``root``.

    Raises:
        PreconditionError: If neither package.json nor pyproject.toml exists.
    """
    for candidate in (PACKAGE_JSON, PYPROJECT):
        path = root / candidate
        if path.exists():
            return open_manifest(path)
    raise PreconditionError(
        f"No {PACKAGE_JSON} or {PYPROJECT} found in {root}. "
        "Run citrusver from the project root."
    )


def manifest_files(manifests: Iterable[Manifest]) -> list[Path]:
    """Every file the given manifests write, without duplicates."""
    seen: dict[Path, None] = {}
    for manifest in manifests:
        for path in manifest.files():
            seen.setdefault(path, None)
    return list(seen)
