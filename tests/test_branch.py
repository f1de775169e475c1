"""Tests for citrusver.branch."""

from __future__ import annotations

import subprocess
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

from conftest import FakeGit

from citrusver.branch import BranchPolicy, suggest_branch_name
from citrusver.config import BranchConfig
from citrusver.models import BumpKind


def _kinds(issues: list) -> list[str]:
    return [i.kind for i in issues]


class TestUpToDate:
    def test_behind_is_invalid(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")
        gateway.counts = (0, 2)

        status = BranchPolicy(BranchConfig(), gateway).check_status()

        assert status.valid is False
        assert status.remote_status == "behind"
        assert _kinds(status.errors) == ["outdated-branch"]

    def test_diverged_is_invalid(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path)
        gateway.counts = (1, 1)
        assert BranchPolicy(BranchConfig(), gateway).up_to_date().status == "diverged"

    def test_ahead_is_valid(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")
        gateway.counts = (3, 0)

        status = BranchPolicy(BranchConfig(), gateway).check_status()

        assert status.valid is True
        assert status.remote_status == "ahead"

    def test_no_tracking_branch_is_valid(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path)
        gateway.counts = None

        status = BranchPolicy(BranchConfig(), gateway).check_status()

        assert status.valid is True
        assert status.remote_status == "no-remote"

    def test_fetch_failure_is_unknown_but_valid(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path)
        gateway.fetch_ok = False

        status = BranchPolicy(BranchConfig(), gateway).check_status()

        assert status.valid is True
        assert status.remote_status == "unknown"

    def test_ahead_behind_error_is_unknown(self, tmp_path: Path) -> None:
        gateway = MagicMock()
        gateway.fetch.return_value = True
        gateway.ahead_behind.side_effect = subprocess.CalledProcessError(1, ["git"])
        assert BranchPolicy(BranchConfig(), gateway).up_to_date().status == "unknown"

    def test_check_can_be_disabled(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path)
        gateway.counts = (0, 5)

        status = BranchPolicy(BranchConfig(require_up_to_date=False), gateway).check_status()

        assert status.valid is True
        assert status.remote_status == "skipped"


class TestWarnings:
    def test_protected_branch(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")

        status = BranchPolicy(BranchConfig(), gateway).check_status(kind=BumpKind.MINOR)

        assert _kinds(status.warnings) == ["protected-branch"]
        assert status.warnings[0].suggestion.startswith("git checkout -b feature/")
        assert status.valid

    def test_force_silences_protection(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")
        status = BranchPolicy(BranchConfig(), gateway).check_status(force=True)
        assert "protected-branch" not in _kinds(status.warnings)

    def test_allow_force_config(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="master")
        status = BranchPolicy(BranchConfig(allow_force=True), gateway).check_status()
        assert "protected-branch" not in _kinds(status.warnings)

    def test_uncommitted_and_non_release(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="feature/login")
        gateway.uncommitted = ["src/app.js"]

        status = BranchPolicy(BranchConfig(), gateway).check_status()

        assert _kinds(status.warnings) == ["uncommitted-changes", "non-release-branch"]
        assert status.valid


class TestReleaseBranch:
    def test_creates_branch(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")

        name = BranchPolicy(BranchConfig(), gateway).create_release_branch("1.3.0")

        assert name == "release/v1.3.0"
        assert gateway.branch == "release/v1.3.0"

    def test_existing_branch(self, tmp_path: Path) -> None:
        gateway = FakeGit(tmp_path, branch="main")
        gateway.branches.add("release/v1.3.0")
        assert BranchPolicy(BranchConfig(), gateway).create_release_branch("1.3.0") is None


class TestSuggestBranchName:
    def test_prefixes(self) -> None:
        today = date(2024, 5, 6)
        assert suggest_branch_name(BumpKind.PATCH, today) == "hotfix/20240506"
        assert suggest_branch_name(BumpKind.MINOR, today) == "feature/20240506"
        assert suggest_branch_name(BumpKind.MAJOR, today) == "release/20240506"
        assert suggest_branch_name(BumpKind.PRERELEASE, today) == "release/20240506"
