"""Lifecycle hooks and plugins.

A plugin is a declared ``Plugin`` record: a name, a version, and a mapping
from lifecycle point to handler. Registration validates the record up
front; a broken plugin is rejected with a warning and never blocks the
release. Handlers run sequentially in registration order.
"""

from __future__ import annotations

import importlib
import importlib.util
from collections.abc import Callable, Iterable
from pathlib import Path
from types import ModuleType
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import HookError, UnknownHookPoint
from .shell import error, info, warn

logger = structlog.get_logger(__name__)

HOOK_POINTS: tuple[str, ...] = (
    "pre-version",
    "post-version",
    "pre-commit",
    "post-commit",
    "pre-tag",
    "post-tag",
    "pre-push",
    "post-push",
    "changelog-generate",
    "version-calculate",
)

PLUGIN_DIR = Path(".citrusver") / "plugins"


class HookContext(BaseModel):
    """What a handler gets to see.

    Attributes:
        point: The lifecycle point being dispatched.
        old_version: Version before the bump.
        new_version: Version after the bump (candidate, for version-calculate).
        kind: Bump kind, as a string.
        data: Point-specific extras (commit message, changelog entry, ...).
        fail_on_error: Whether a handler failure aborts the workflow.
            None means "pre-* points abort, others continue".
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    point: str = ""
    old_version: str | None = None
    new_version: str | None = None
    kind: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    fail_on_error: bool | None = None

    def should_fail(self) -> bool:
        if self.fail_on_error is not None:
            return self.fail_on_error
        return self.point.startswith("pre-")


Handler = Callable[[HookContext], Any]


class Plugin(BaseModel):
    """Declared plugin capability. ``name`` and ``version`` are required."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    version: str
    description: str = ""
    hooks: dict[str, Handler] = Field(default_factory=dict)


class HookResult(BaseModel):
    source: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class HookDispatcher:
    """Registry of handlers per lifecycle point."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[str, Handler]]] = {p: [] for p in HOOK_POINTS}
        self._plugins: dict[str, Plugin] = {}

    def add_handler(self, point: str, source: str, handler: Handler) -> None:
        """Append a single handler.

        Raises:
            UnknownHookPoint: If ``point`` is not one of ``HOOK_POINTS``.
        """
        if point not in self._handlers:
            raise UnknownHookPoint(f"Unknown hook point '{point}' from {source}")
        self._handlers[point].append((source, handler))

    def register(self, plugin: Any) -> bool:
        """Register a plugin's handlers.

        Rejects (warning, returns False) anything that is not a valid
        ``Plugin``, has an empty name or version, or names a hook point that
        does not exist. Nothing is registered for a rejected plugin.
        """
        if not isinstance(plugin, Plugin):
            warn(f"Invalid plugin: {plugin!r} is not a Plugin")
            return False
        if not plugin.name.strip() or not plugin.version.strip():
            warn(f"Invalid plugin: {plugin.name or '<unnamed>'} needs a name and version")
            return False
        unknown = sorted(set(plugin.hooks) - set(HOOK_POINTS))
        if unknown:
            warn(f"Invalid plugin: {plugin.name} uses unknown hook points {', '.join(unknown)}")
            return False
        if plugin.name in self._plugins:
            warn(f"Plugin {plugin.name} is already registered")
            return False

        self._plugins[plugin.name] = plugin
        for point, handler in plugin.hooks.items():
            self.add_handler(point, plugin.name, handler)
        logger.debug("registered plugin", plugin=plugin.name, hooks=list(plugin.hooks))
        return True

    def plugins(self) -> list[Plugin]:
        return list(self._plugins.values())

    def handlers(self, point: str) -> list[tuple[str, Handler]]:
        if point not in self._handlers:
            raise UnknownHookPoint(f"Unknown hook point '{point}'")
        return list(self._handlers[point])

    def dispatch(self, point: str, context: HookContext | None = None) -> list[HookResult]:
        """Run every handler for ``point`` in registration order.

        Handler failures are reported per handler. If the context says the
        point should fail on error, the first failure is raised as
        ``HookError`` after being reported.
        """
        handlers = self.handlers(point)
        context = (context or HookContext()).model_copy(update={"point": point})
        results: list[HookResult] = []
        for source, handler in handlers:
            try:
                outcome = handler(context)
            except Exception as exc:  # noqa: BLE001 - plugins may raise anything
                logger.warning("hook failed", point=point, plugin=source, error=str(exc))
                error(f"Plugin {source} hook {point} failed: {exc}")
                results.append(HookResult(source=source, error=str(exc)))
                if context.should_fail():
                    raise HookError(f"Plugin {source} hook {point} failed: {exc}") from exc
                continue
            results.append(HookResult(source=source, result=outcome))
        return results


def _module_from_file(name: str, path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"citrusver_plugin_{name}", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load plugin from {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _import_plugin_module(name: str, root: Path) -> ModuleType | None:
    local = root / PLUGIN_DIR / f"{name}.py"
    if local.exists():
        return _module_from_file(name, local)
    try:
        return importlib.import_module(name)
    except ModuleNotFoundError:
        return None


def load_plugin(name: str, root: Path) -> Plugin | None:
    """Load a plugin by name.

    Looks in ``.citrusver/plugins/<name>.py`` first, then imports ``name``
    as a module. The module must export ``plugin`` (a ``Plugin``) or a
    ``create_plugin()`` factory returning one.
    """
    module = _import_plugin_module(name, root)
    if module is None:
        warn(f"Plugin not found: {name}")
        return None

    candidate = getattr(module, "plugin", None)
    factory = getattr(module, "create_plugin", None)
    if candidate is None and callable(factory):
        candidate = factory()
    if isinstance(candidate, dict):
        try:
            candidate = Plugin.model_validate(candidate)
        except ValidationError as exc:
            warn(f"Invalid plugin: {name} ({exc.error_count()} validation errors)")
            return None
    if not isinstance(candidate, Plugin):
        warn(f"Invalid plugin: {name} does not export a Plugin")
        return None
    return candidate


def load_plugins(names: Iterable[str], dispatcher: HookDispatcher, root: Path) -> list[str]:
    """Load and register each named plugin. Returns the names registered."""
    loaded: list[str] = []
    for name in names:
        try:
            plugin = load_plugin(name, root)
        except Exception as exc:  # noqa: BLE001 - plugin import runs arbitrary code
            logger.warning("plugin load failed", plugin=name, error=str(exc))
            error(f"Failed to load plugin {name}: {exc}")
            continue
        if plugin is not None and dispatcher.register(plugin):
            info(f"Loaded plugin: {plugin.name} v{plugin.version}")
            loaded.append(plugin.name)
    return loaded
