"""Tests for citrusver.versions."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from citrusver.errors import InvalidVersionFormat, StrategyInvariantViolation
from citrusver.models import BumpKind, StrategyName, VersionStrategyConfig
from citrusver.versions import (
    apply_label,
    bump_custom,
    bump_date,
    bump_prerelease,
    bump_semver,
    compare_versions,
    expand_pattern,
    next_version,
    parse_version,
    validate_version,
)


class TestParseVersion:
    def test_full_semver(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_two_part_version(self) -> None:
        v = parse_version("1.2")
        assert (v.major, v.minor, v.patch) == (1, 2, 0)

    def test_single_part_version(self) -> None:
        v = parse_version("5")
        assert (v.major, v.minor, v.patch) == (5, 0, 0)

    def test_non_numeric_component_is_zero(self) -> None:
        v = parse_version("1.x.3")
        assert (v.major, v.minor, v.patch) == (1, 0, 3)

    def test_keeps_prerelease_and_build(self) -> None:
        v = parse_version("1.0.0-alpha.1+build.5")
        assert v.prerelease == "alpha.1"
        assert v.build == "build.5"

    def test_leading_v(self) -> None:
        assert str(parse_version("v2.0.1")) == "2.0.1"

    @pytest.mark.parametrize("bad", ["", "   ", "1.0.0 beta", "1.0/0"])
    def test_rejects_garbage(self, bad: str) -> None:
        with pytest.raises(InvalidVersionFormat):
            parse_version(bad)


class TestBumpSemver:
    def test_patch(self) -> None:
        assert bump_semver("1.2.3", BumpKind.PATCH) == "1.2.4"

    def test_minor(self) -> None:
        assert bump_semver("1.2.3", BumpKind.MINOR) == "1.3.0"

    def test_major(self) -> None:
        assert bump_semver("1.2.3", BumpKind.MAJOR) == "2.0.0"

    def test_incomplete_version(self) -> None:
        assert bump_semver("1.2", BumpKind.PATCH) == "1.2.1"

    def test_high_patch(self) -> None:
        assert bump_semver("1.0.99", BumpKind.PATCH) == "1.0.100"


class TestBumpDate:
    def test_new_day(self) -> None:
        assert bump_date("2024.01.14", date(2024, 1, 15)) == "2024.01.15"

    def test_same_day_gets_ordinal(self) -> None:
        today = date(2024, 1, 15)
        first = bump_date("1.0.0", today)
        second = bump_date(first, today)
        third = bump_date(second, today)
        assert (first, second, third) == ("2024.01.15", "2024.01.15.1", "2024.01.15.2")

    def test_no_current_version(self) -> None:
        assert bump_date(None, date(2025, 12, 1)) == "2025.12.01"


class TestBumpPrerelease:
    def test_from_release(self) -> None:
        assert bump_prerelease("1.0.0", BumpKind.PRERELEASE, "alpha") == "1.0.1-alpha.0"

    def test_same_identifier_increments(self) -> None:
        assert bump_prerelease("1.0.1-alpha.0", BumpKind.PRERELEASE, "alpha") == "1.0.1-alpha.1"

    def test_switching_identifier_resets_ordinal(self) -> None:
        assert bump_prerelease("1.0.1-alpha.1", BumpKind.PRERELEASE, "beta") == "1.0.1-beta.0"

    def test_minor_with_new_identifier(self) -> None:
        assert bump_prerelease("1.0.0", BumpKind.MINOR, "rc") == "1.1.0-rc.0"

    def test_identifier_without_ordinal(self) -> None:
        assert bump_prerelease("1.0.1-alpha", BumpKind.PRERELEASE, "alpha") == "1.0.1-alpha.0"


class TestCustomPattern:
    NOW = datetime(2024, 3, 7, 12, 0, 0)

    def test_expands_date_placeholders(self) -> None:
        assert expand_pattern("{{year}}.{{month}}.{{day}}", "1.0.0", self.NOW) == "2024.03.07"

    def test_current_placeholder(self) -> None:
        assert expand_pattern("{{current}}-nightly", "1.0.0", self.NOW) == "1.0.0-nightly"

    def test_unknown_placeholder_left_alone(self) -> None:
        assert expand_pattern("{{year}}.{{build}}", "1.0.0", self.NOW) == "2024.{{build}}"

    def test_no_pattern_falls_back_to_semver(self) -> None:
        assert bump_custom("1.2.3", BumpKind.MINOR, None) == "1.3.0"

    def test_invalid_expansion_is_rejected(self) -> None:
        strategy = VersionStrategyConfig(strategy=StrategyName.CUSTOM, pattern="{{year}}.{{build}}")
        with pytest.raises(StrategyInvariantViolation, match="build"):
            next_version("1.0.0", BumpKind.PATCH, strategy, self.NOW)


class TestNextVersion:
    def test_semver_strategy(self) -> None:
        assert next_version("1.2.3", BumpKind.MAJOR, VersionStrategyConfig()) == "2.0.0"

    def test_prerelease_kind_under_semver(self) -> None:
        strategy = VersionStrategyConfig(prerelease_id="beta")
        assert next_version("1.2.3", BumpKind.PRERELEASE, strategy) == "1.2.4-beta.0"

    def test_date_strategy(self) -> None:
        strategy = VersionStrategyConfig(strategy=StrategyName.DATE)
        now = datetime(2024, 1, 15, 9, 30)
        assert next_version("2024.01.15", BumpKind.PATCH, strategy, now) == "2024.01.15.1"

    def test_prerelease_strategy(self) -> None:
        strategy = VersionStrategyConfig(strategy=StrategyName.PRERELEASE, prerelease_id="rc")
        assert next_version("2.0.0-rc.3", BumpKind.PATCH, strategy) == "2.0.0-rc.4"

    def test_unparseable_current(self) -> None:
        with pytest.raises(InvalidVersionFormat):
            next_version("not a version", BumpKind.PATCH, VersionStrategyConfig())


class TestValidateVersion:
    @pytest.mark.parametrize("version", ["1.2.3", "1.2.3-alpha.0", "1.2.3+build.1"])
    def test_valid_semver(self, version: str) -> None:
        assert validate_version(version)

    @pytest.mark.parametrize("version", ["1.2", "v1.2.3", "", "2024.01.15"])
    def test_invalid_semver(self, version: str) -> None:
        assert not validate_version(version)

    def test_date_grammar(self) -> None:
        assert validate_version("2024.01.15.2", StrategyName.DATE)
        assert not validate_version("1.2.3", StrategyName.DATE)

    def test_custom_accepts_either(self) -> None:
        assert validate_version("2024.01.15", StrategyName.CUSTOM)
        assert validate_version("1.2.3", StrategyName.CUSTOM)


class TestApplyLabel:
    def test_adds_label(self) -> None:
        assert apply_label("1.2.3", "rc1") == "1.2.3-rc1"

    def test_replaces_prerelease(self) -> None:
        assert apply_label("1.2.3-alpha.0", "beta") == "1.2.3-beta"

    def test_no_label(self) -> None:
        assert apply_label("1.2.3", None) == "1.2.3"

    def test_rejects_bad_label(self) -> None:
        with pytest.raises(InvalidVersionFormat):
            apply_label("1.2.3", "no spaces")


class TestCompareVersions:
    def test_ordering(self) -> None:
        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("1.0.0", "1.0.0") == 0
        assert compare_versions("1.0.0a1", "1.0.0") == -1
