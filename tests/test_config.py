"""Tests for citrusver.config."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from citrusver.config import CONFIG_FILE, TEMPLATES, Config, load_config, write_config
from citrusver.models import StrategyName


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)

        assert config.message_style == "interactive"
        assert config.auto_tag is True
        assert config.auto_push is False
        assert config.branch.protected == ["main", "master"]
        assert config.branch.require_up_to_date is True
        assert config.monorepo.packages == "packages/*"
        assert config.npm.access == "public"

    def test_camel_case_keys(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text(
            json.dumps(
                {
                    "autoPush": True,
                    "versionStrategy": "date",
                    "branch": {"allowForce": True, "releaseBranches": ["next"]},
                    "npm": {"checkRegistry": True},
                }
            )
        )

        config = load_config(tmp_path)

        assert config.auto_push is True
        assert config.version_strategy is StrategyName.DATE
        assert config.branch.allow_force is True
        assert config.branch.release_branches == ["next"]
        assert config.npm.check_registry is True

    def test_unknown_keys_are_kept_but_ignored(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text('{"somethingNew": 1, "autoTag": false}')

        config = load_config(tmp_path)

        assert config.auto_tag is False
        assert config.model_extra == {"somethingNew": 1}

    def test_malformed_file_falls_back(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text("{ not json")
        assert load_config(tmp_path) == Config()

    def test_invalid_values_fall_back(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text('{"versionStrategy": "roman"}')
        assert load_config(tmp_path) == Config()

    def test_non_object_falls_back(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE).write_text("[1, 2]")
        assert load_config(tmp_path) == Config()

    def test_config_is_frozen(self) -> None:
        config = Config()
        with pytest.raises(ValueError):
            config.auto_push = True  # type: ignore[misc]


class TestStrategy:
    def test_cli_preid_wins(self) -> None:
        config = Config(prerelease_id="beta", version_strategy=StrategyName.PRERELEASE)
        assert config.strategy("rc").prerelease_id == "rc"
        assert config.strategy().prerelease_id == "beta"

    def test_custom_pattern_passed_through(self) -> None:
        config = Config(version_strategy=StrategyName.CUSTOM, custom_pattern="{{year}}.0.0")
        assert config.strategy().pattern == "{{year}}.0.0"


class TestWriteConfig:
    @pytest.mark.parametrize("template", list(TEMPLATES))
    def test_every_template_loads(self, tmp_path: Path, template: str) -> None:
        write_config(tmp_path, template)
        assert load_config(tmp_path) is not None

    def test_conventional_template(self, tmp_path: Path) -> None:
        write_config(tmp_path, "conventional")
        config = load_config(tmp_path)
        assert config.conventional_commits is True
        assert config.changelog is True

    def test_unknown_template(self, tmp_path: Path) -> None:
        with pytest.raises(KeyError):
            write_config(tmp_path, "nope")

    def test_adds_state_dir_to_gitignore(self, tmp_path: Path) -> None:
        (tmp_path / ".gitignore").write_text("node_modules/\n")

        write_config(tmp_path, "default")
        write_config(tmp_path, "default")

        lines = (tmp_path / ".gitignore").read_text().splitlines()
        assert lines.count(".citrusver/") == 1
        assert lines[0] == "node_modules/"
