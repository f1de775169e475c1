"""Project configuration (``.citrusver.json``).

The file is parsed once per invocation into a frozen ``Config`` and handed
to every component that needs it. Keys are camelCase on disk and
snake_case in Python; unknown keys are kept on the model but ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .models import StrategyName, VersionStrategyConfig
from .shell import warn

logger = structlog.get_logger(__name__)

CONFIG_FILE = ".citrusver.json"
STATE_DIR = ".citrusver"


class _Section(BaseModel):
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel, extra="allow"
    )


class BranchConfig(_Section):
    protected: list[str] = Field(default_factory=lambda: ["main", "master"])
    allow_force: bool = False
    release_branches: list[str] = Field(default_factory=lambda: ["main", "master"])
    require_up_to_date: bool = True
    auto_create_release_branch: bool = False


class MonorepoConfig(_Section):
    enabled: bool = False
    packages: str = "packages/*"
    independent: bool = False
    sync_versions: bool = True
    include_private: bool = False


class NpmConfig(_Section):
    publish: bool = False
    access: str = "public"
    tag: str = "latest"
    check_registry: bool = False


class Config(_Section):
    """Recognized options with their documented defaults."""

    message_style: str = "interactive"
    auto_tag: bool = True
    auto_push: bool = False
    confirm_release: bool = True
    changelog: bool = False
    pre_version: str | None = None
    post_version: str | None = None
    commit_template: str | None = None
    version_strategy: StrategyName = StrategyName.SEMVER
    prerelease_id: str = "alpha"
    custom_pattern: str | None = None
    conventional_commits: bool = False
    detailed_description: bool = False
    branch: BranchConfig = Field(default_factory=BranchConfig)
    monorepo: MonorepoConfig = Field(default_factory=MonorepoConfig)
    npm: NpmConfig = Field(default_factory=NpmConfig)
    plugins: list[str] = Field(default_factory=list)

    def strategy(self, preid: str | None = None) -> VersionStrategyConfig:
        """Build the strategy config, letting a CLI ``--preid`` win."""
        return VersionStrategyConfig(
            strategy=self.version_strategy,
            prerelease_id=preid or self.prerelease_id,
            pattern=self.custom_pattern,
        )


def load_config(root: Path) -> Config:
    """Load ``.citrusver.json`` from ``root``, falling back to defaults.

    A missing file is normal. A file that is not valid JSON, or whose values
    fail validation, produces a warning and the defaults; it is never fatal.
    """
    path = root / CONFIG_FILE
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError("top-level value must be an object")
        config = Config.model_validate(data)
    except (ValueError, ValidationError) as exc:
        # JSONDecodeError is a ValueError
        logger.warning("invalid config", path=str(path), error=str(exc))
        warn(f"Invalid {CONFIG_FILE} config, using defaults")
        return Config()

    logger.debug("loaded config", path=str(path))
    return config


TEMPLATES: dict[str, dict[str, Any]] = {
    "default": {
        "messageStyle": "interactive",
        "autoTag": True,
        "autoPush": False,
        "confirmRelease": True,
        "changelog": False,
        "branch": {"protected": ["main", "master"], "allowForce": False},
    },
    "conventional": {
        "messageStyle": "interactive",
        "autoTag": True,
        "autoPush": False,
        "confirmRelease": True,
        "changelog": True,
        "conventionalCommits": True,
        "commitTemplate": "{{type}}{{scope}}: {{message}}\n\nv{{version}}",
        "branch": {"protected": ["main", "master", "develop"], "allowForce": False},
    },
    "semantic-release": {
        "messageStyle": "interactive",
        "autoTag": True,
        "autoPush": True,
        "confirmRelease": False,
        "changelog": True,
        "conventionalCommits": True,
        "npm": {"publish": True, "access": "public"},
        "commitTemplate": "chore(release): {{version}}\n\n{{message}}",
        "branch": {
            "protected": ["main", "master"],
            "allowForce": False,
            "releaseBranches": ["main", "master", "next", "beta", "alpha"],
        },
    },
    "monorepo": {
        "messageStyle": "interactive",
        "autoTag": True,
        "autoPush": False,
        "confirmRelease": True,
        "changelog": True,
        "monorepo": {
            "enabled": True,
            "packages": "packages/*",
            "independent": False,
            "syncVersions": True,
        },
        "branch": {"protected": ["main", "master"], "allowForce": False},
    },
    "minimal": {
        "messageStyle": "simple",
        "autoTag": False,
        "autoPush": False,
        "confirmRelease": False,
        "changelog": False,
    },
}


def write_config(root: Path, template: str, overrides: dict[str, Any] | None = None) -> Path:
    """Write a configuration template to ``root/.citrusver.json``.

    Raises:
        KeyError: If ``template`` is not one of ``TEMPLATES``.
    """
    data = json.loads(json.dumps(TEMPLATES[template]))
    if overrides:
        data.update(overrides)
    path = root / CONFIG_FILE
    path.write_text(json.dumps(data, indent=2) + "\n")
    _ignore_state_dir(root)
    return path


def _ignore_state_dir(root: Path) -> None:
    """Add the rollback state directory to an existing .gitignore."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return
    lines = gitignore.read_text().splitlines()
    if f"{STATE_DIR}/" in lines:
        return
    lines.extend(["", "# citrusver", f"{STATE_DIR}/"])
    gitignore.write_text("\n".join(lines) + "\n")
